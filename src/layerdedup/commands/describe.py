from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from ..report.store import STATUS_FILTERED, LayerSummary, ReportManifest, ReportStore


def format_size(size_bytes: int) -> str:
    """Format byte size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string (e.g., "1.5 MB")
    """
    size: float = float(size_bytes)
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024.0:
            if unit == 'B':
                return f"{int(size)} {unit}"
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} PB"


@dataclass
class DescribeOptions:
    show_links: bool = False
    """List the link records of each described layer"""

    layer: str | None = None
    """Describe only the layer with this name"""

    use_bytes: bool = False
    """Show sizes in bytes instead of human-readable format"""


class LayerRow(NamedTuple):
    name: str
    status: str
    entries: str
    links: str
    saved: str
    diff_id: str


COLUMNS = [
    ('name', 'Layer', False),
    ('status', 'Status', False),
    ('entries', 'Entries', True),
    ('links', 'Links', True),
    ('saved', 'Saved', True),
    ('diff_id', 'Diff ID', False),
]


def print_formatted_table(columns: list[tuple[str, str, bool]], rows: list[NamedTuple]) -> None:
    """Print rows as a table.

    Args:
        columns: List of (field_name, display_name, align_right) tuples
        rows: Rows exposing the field names as attributes
    """
    if not rows:
        return

    field_names = [col[0] for col in columns]
    headers = [col[1] for col in columns]

    col_widths = [max(max(len(str(getattr(row, field_names[i]))) for row in rows), len(headers[i]))
                  for i in range(len(headers))]

    header_parts = []
    row_format_specs = []
    for i in range(len(columns)):
        align = '>' if columns[i][2] else '<'
        header_parts.append(f"{headers[i]:{align}{col_widths[i]}}")
        row_format_specs.append(f"{{:{align}{col_widths[i]}}}")
    row_template = "  ".join(row_format_specs)

    header = "  ".join(header_parts)
    print(header.rstrip())
    print("-" * len(header))

    for row in rows:
        print(row_template.format(*[str(getattr(row, name)) for name in field_names]).rstrip())


def do_describe(report_dir: Path, options: DescribeOptions | None = None) -> None:
    """Print the summary, and optionally the link records, of a filtering report.

    Raises:
        FileNotFoundError: If the report or the requested layer doesn't exist
    """
    if options is None:
        options = DescribeOptions()

    store = ReportStore(report_dir)
    manifest = store.read_manifest()

    layers = manifest.layers
    if options.layer is not None:
        layers = [layer for layer in layers if layer.name == options.layer]
        if not layers:
            raise FileNotFoundError(f"Layer {options.layer} not found in report {report_dir}")

    size = str if options.use_bytes else format_size

    _print_header(report_dir, manifest)
    print_formatted_table(COLUMNS, [_build_row(layer, size) for layer in layers])
    print()
    print(f"Total saved: {size(sum(layer.saved_bytes for layer in layers))}")

    for layer in layers:
        if layer.error:
            print(f"{layer.name}: {layer.error}")

    if options.show_links:
        with store:
            for layer in layers:
                if layer.links == 0:
                    continue
                print()
                print(f"Links of {layer.name}:")
                for link in store.read_links(layer.name):
                    print(f"  {link.path} => {link.target} ({size(link.size)})")


def _print_header(report_dir: Path, manifest: ReportManifest) -> None:
    print(f"Report: {report_dir}")
    print(f"Timestamp: {manifest.timestamp}")
    print(f"Digest: {manifest.digest}")
    print(f"Threshold: {manifest.threshold} bytes")
    print()


def _build_row(layer: LayerSummary, size) -> LayerRow:
    if layer.status == STATUS_FILTERED:
        return LayerRow(layer.name, layer.status, str(layer.entries), str(layer.links), size(layer.saved_bytes),
                        layer.diff_id)
    return LayerRow(layer.name, layer.status, '-', '-', '-', layer.diff_id)
