import asyncio
import logging
from asyncio import TaskGroup
from pathlib import Path
from typing import NamedTuple

from ..errors import LayerDedupError
from ..filter import LayerFilter, PassStats
from ..layer import LayerOutput, LayerSource, copy_blob, is_filterable, write_layer
from ..report.store import STATUS_BYPASSED, STATUS_FAILED, STATUS_FILTERED, LayerSummary, ReportStore
from ..utils.pipe import PipeReader
from ..utils.throttler import Throttler

logger = logging.getLogger(__name__)


class LayerJob(NamedTuple):
    """One layer to filter and the file its result is written to."""
    layer: LayerSource
    destination: Path


class FilterLayersArgs(NamedTuple):
    """Arguments for the filter-layers operation."""
    layer_filter: LayerFilter
    jobs: list[LayerJob]
    concurrency: int  # Maximum number of layers filtered at the same time
    compress: bool = False  # gzip the filtered archives
    fail_fast: bool = False  # Stop all layers at the first failure
    report: ReportStore | None = None  # Opened store receiving link records


class LayerTask:
    """Filters one layer into its destination file. Called in a worker thread."""

    def __init__(self, layer_filter: LayerFilter, job: LayerJob, compress: bool):
        self._layer_filter = layer_filter
        self._job = job
        self._compress = compress
        self._stream: PipeReader | None = None
        self._cancelled = False

    def cancel(self):
        """Stop the running pass; the worker then fails with PassCancelled."""
        self._cancelled = True
        if self._stream is not None:
            self._stream.cancel()

    def __call__(self) -> tuple[str, LayerOutput, PassStats | None]:
        layer = self._job.layer
        destination = self._job.destination
        media_type = layer.media_type()

        if not is_filterable(media_type):
            logger.info(f"Layer {layer.name} has media type {media_type}, copying it unchanged")
            return media_type, copy_blob(layer, destination), None

        open_filtered = self._layer_filter.opener(layer.open_uncompressed, name=layer.name)
        stream = open_filtered()
        self._stream = stream
        if self._cancelled:
            stream.cancel()

        try:
            with stream:
                output = write_layer(stream, destination, self._compress)
                stats = stream.result()
        except BaseException:
            # The consumer discards partial output of a failed pass.
            destination.unlink(missing_ok=True)
            raise

        return media_type, output, stats


class FilterLayersProcessor:
    """Filters several layers concurrently, one pass per layer."""

    def __init__(self, args: FilterLayersArgs):
        self._args = args
        self._summaries: dict[int, LayerSummary] = {}

    async def run(self) -> list[LayerSummary]:
        """Filter all layers and return their summaries in job order.

        Raises:
            LayerDedupError: With fail_fast, the first layer failure
        """
        try:
            async with TaskGroup() as tg:
                throttler = Throttler(tg, self._args.concurrency)
                for position, job in enumerate(self._args.jobs):
                    await throttler.schedule(self._handle_layer(position, job), name=job.layer.name)
        except ExceptionGroup as group:
            failures = [e for e in group.exceptions if isinstance(e, LayerDedupError)]
            if not failures:
                raise
            raise failures[0] from None

        return [self._summaries[position] for position in range(len(self._args.jobs))]

    @property
    def summaries(self) -> list[LayerSummary]:
        """Summaries of the layers completed so far, in job order."""
        return [self._summaries[position] for position in sorted(self._summaries)]

    async def _handle_layer(self, position: int, job: LayerJob):
        name = job.layer.name
        task = LayerTask(self._args.layer_filter, job, self._args.compress)

        try:
            media_type, output, stats = await asyncio.to_thread(task)
        except asyncio.CancelledError:
            task.cancel()
            raise
        except LayerDedupError as e:
            logger.error(f"Layer {name} failed: {e}")
            self._summaries[position] = LayerSummary(name, STATUS_FAILED, error=f"{type(e).__name__}: {e}")
            if self._args.fail_fast:
                raise
            return

        if stats is None:
            summary = LayerSummary(
                name, STATUS_BYPASSED, media_type=media_type,
                digest=output.digest, size=output.size)
        else:
            summary = LayerSummary(
                name, STATUS_FILTERED, media_type=media_type,
                entries=stats.entries, candidates=stats.candidates, links=len(stats.links),
                saved_bytes=stats.saved_bytes, diff_id=output.diff_id, digest=output.digest, size=output.size)
            if self._args.report is not None:
                self._args.report.write_links(name, stats.links)

        self._summaries[position] = summary


async def do_filter_layers(args: FilterLayersArgs) -> list[LayerSummary]:
    """Async implementation of the filter-layers operation."""
    processor = FilterLayersProcessor(args)
    return await processor.run()
