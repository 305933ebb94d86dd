import asyncio
import datetime
import logging
import os
from pathlib import Path

from .commands.filter_layers import FilterLayersArgs, FilterLayersProcessor, LayerJob, do_filter_layers
from .errors import LayerDedupError
from .filter import LayerFilter
from .layer import LayerSource, is_filterable
from .report.store import ReportManifest, ReportStore, LayerSummary
from .settings import Settings, SETTING_LOGGING_LEVEL, SETTING_LOGGING_PATH


def output_name(layer_name: str, compress: bool) -> str:
    """Name of the filtered blob written for a layer blob called ``layer_name``."""
    if layer_name.endswith('.tgz'):
        name = layer_name[:-len('.tgz')] + '.tar'
    elif layer_name.endswith('.gz'):
        name = layer_name[:-len('.gz')]
    else:
        name = layer_name

    if compress:
        name += '.gz'
    return name


class Deduplicator:
    """Workflow layer for filtering image layers.

    Combines the settings, a configured :class:`LayerFilter` and the
    concurrent per-layer orchestration into user-facing operations:
    - filter_layers(): filter a set of layer blobs into an output directory
    - describe(): print a report written by filter_layers()

    Explicit arguments override values from the settings.
    """

    def __init__(self, settings: Settings | None = None, *,
                 threshold: int | None = None, digest: str | None = None, jobs: int | None = None):
        """Initialize the deduplicator.

        Raises:
            ValueError: An argument or setting is invalid
        """
        if settings is None:
            settings = Settings()

        self._settings = settings
        self._layer_filter = LayerFilter(
            settings.threshold if threshold is None else threshold,
            settings.digest if digest is None else digest,
            chunk_size=settings.chunk_size,
            max_chunks=settings.max_chunks,
            spool_size=settings.spool_size)
        self._jobs = settings.jobs if jobs is None else jobs
        if self._jobs < 1:
            raise ValueError(f"jobs must be positive: {self._jobs}")

    @property
    def layer_filter(self) -> LayerFilter:
        return self._layer_filter

    def configure_logging_from_settings(self, level: str | None = None) -> bool:
        """Configure logging from settings if a log path is specified.

        Args:
            level: Logging level name overriding logging.level from the settings

        Returns:
            True if logging was configured, False otherwise
        """
        log_path_setting = self._settings.get(SETTING_LOGGING_PATH)
        if not log_path_setting:
            return False

        level_name = (level or str(self._settings.get(SETTING_LOGGING_LEVEL, 'INFO'))).upper()
        log_level = logging.getLevelName(level_name)
        if not isinstance(log_level, int):
            raise ValueError(f"Unknown logging level: {level_name}")

        for handler in logging.root.handlers[:]:
            logging.root.removeHandler(handler)

        logging.basicConfig(
            filename=str(log_path_setting),
            level=log_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        return True

    def filter_layers(self, layers: list[LayerSource], output_dir: str | os.PathLike, *,
                      compress: bool = False,
                      report_dir: str | os.PathLike | None = None,
                      fail_fast: bool = False) -> list[LayerSummary]:
        """Filter each layer into ``output_dir``.

        Foreign layers are copied unchanged under their own name. A layer that
        fails leaves no output file behind and is reported with status
        ``failed``; with ``fail_fast`` the first failure is raised instead.

        Args:
            layers: Layer sources to filter
            output_dir: Directory receiving the filtered blobs, created if missing
            compress: gzip the filtered archives
            report_dir: Directory receiving a report of the run
            fail_fast: Raise the first layer failure and stop the other layers

        Returns:
            One summary per layer, in the given order

        Raises:
            ValueError: Two layers would be written to the same file
            LayerDedupError: With fail_fast, the first layer failure
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        jobs = []
        for layer in layers:
            try:
                filterable = is_filterable(layer.media_type())
            except LayerDedupError:
                # Reported as a failure of this layer when it is processed
                filterable = True
            name = output_name(layer.name, compress) if filterable else layer.name
            jobs.append(LayerJob(layer, output_dir / name))

        destinations = [job.destination for job in jobs]
        if len(set(destinations)) != len(destinations):
            raise ValueError("Several layers would be written to the same output file")

        timestamp = datetime.datetime.now(datetime.UTC).isoformat()

        if report_dir is None:
            return asyncio.run(do_filter_layers(self._make_args(jobs, compress, fail_fast, None)))

        store = ReportStore(Path(report_dir))
        store.create_report_directory()
        store.open_database(create_if_missing=True)
        processor = FilterLayersProcessor(self._make_args(jobs, compress, fail_fast, store))
        try:
            return asyncio.run(processor.run())
        finally:
            store.write_manifest(ReportManifest(
                timestamp=timestamp,
                digest=self._layer_filter.digest.name,
                threshold=self._layer_filter.threshold,
                layers=processor.summaries))
            store.close_database()

    def describe(self, report_dir: str | os.PathLike, show_links: bool = False, layer: str | None = None,
                 use_bytes: bool = False) -> None:
        """Print a report written by :meth:`filter_layers`."""
        from .commands.describe import do_describe, DescribeOptions

        do_describe(Path(report_dir), DescribeOptions(show_links=show_links, layer=layer, use_bytes=use_bytes))

    def _make_args(self, jobs: list[LayerJob], compress: bool, fail_fast: bool,
                   report: ReportStore | None) -> FilterLayersArgs:
        return FilterLayersArgs(self._layer_filter, jobs, self._jobs, compress, fail_fast, report)
