"""Report storage for filtering results."""

import json
import struct
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Iterable, Iterator

import mmh3
import msgpack
import plyvel

from ..filter import LinkDecision

REPORT_VERSION = "1.0"

STATUS_FILTERED = 'filtered'
STATUS_BYPASSED = 'bypassed'
STATUS_FAILED = 'failed'


@dataclass
class LayerSummary:
    """Outcome of one layer in a report."""
    name: str
    status: str
    media_type: str = ""
    entries: int = 0
    candidates: int = 0
    links: int = 0
    saved_bytes: int = 0
    diff_id: str = ""
    digest: str = ""
    size: int = 0
    error: str = ""


@dataclass
class ReportManifest:
    """Report metadata, persisted as manifest.json in the report directory."""
    version: str = REPORT_VERSION
    """Report format version"""

    timestamp: str = ""
    """ISO format timestamp when filtering was performed"""

    digest: str = ""
    """Name of the content digest algorithm"""

    threshold: int = 0
    """Size threshold for link candidates"""

    layers: list[LayerSummary] = field(default_factory=list)
    """Per-layer summaries, in the order the layers were given"""

    @property
    def saved_bytes(self) -> int:
        return sum(layer.saved_bytes for layer in self.layers)

    def to_dict(self) -> dict[str, Any]:
        """Convert manifest to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReportManifest":
        """Load manifest from dictionary."""
        data = dict(data)
        data['layers'] = [LayerSummary(**layer) for layer in data.get('layers', [])]
        return cls(**data)


def encode_link_record(link: LinkDecision) -> bytes:
    result = msgpack.dumps([link.path, link.target, link.size])
    assert isinstance(result, bytes)
    return result


def decode_link_record(ordinal: int, data: bytes) -> LinkDecision:
    decoded = msgpack.loads(data)
    assert isinstance(decoded, list)
    path, target, size = decoded
    return LinkDecision(ordinal, path, target, size)


class ReportStore:
    """Reads and writes filtering reports: a manifest plus a LevelDB database of link records.

    Link records are keyed by ``<16-byte layer name hash><8-byte big-endian entry ordinal>``
    so that iterating one layer's prefix yields its links in archive order.
    """

    def __init__(self, report_dir: Path) -> None:
        self.report_dir: Path = report_dir
        self.manifest_path: Path = report_dir / 'manifest.json'
        self.database_path: Path = report_dir / 'database'
        self._database: plyvel.DB | None = None

    def create_report_directory(self) -> None:
        """Create the report directory if it doesn't exist."""
        self.report_dir.mkdir(parents=True, exist_ok=True)

    def open_database(self, *, create_if_missing: bool = False) -> None:
        """Open the LevelDB database.

        Args:
            create_if_missing: If True, create the database if it doesn't exist.
                              If False, raise FileNotFoundError if database doesn't exist.
        """
        if create_if_missing:
            self.database_path.mkdir(parents=True, exist_ok=True)
        elif not self.database_path.exists():
            raise FileNotFoundError(f"Database directory not found: {self.database_path}")
        self._database = plyvel.DB(str(self.database_path), create_if_missing=create_if_missing)

    def close_database(self) -> None:
        """Close the LevelDB database."""
        if self._database is not None:
            self._database.close()
            self._database = None

    def __enter__(self) -> "ReportStore":
        self.open_database()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close_database()

    def write_links(self, layer_name: str, links: Iterable[LinkDecision]) -> None:
        """Replace the link records of ``layer_name``."""
        prefixed_db = self._layer_db(layer_name)

        with prefixed_db.write_batch() as batch:
            for key, _ in prefixed_db.iterator():
                batch.delete(key)
            for link in links:
                batch.put(struct.pack('>Q', link.ordinal), encode_link_record(link))

    def read_links(self, layer_name: str) -> Iterator[LinkDecision]:
        """Yield the link records of ``layer_name`` in archive order."""
        for key, value in self._layer_db(layer_name).iterator():
            ordinal, = struct.unpack('>Q', key)
            yield decode_link_record(ordinal, value)

    def write_manifest(self, manifest: ReportManifest) -> None:
        with open(self.manifest_path, 'w') as f:
            json.dump(manifest.to_dict(), f, indent=2)

    def read_manifest(self) -> ReportManifest:
        """Read existing report manifest.

        Raises:
            FileNotFoundError: If manifest.json doesn't exist
        """
        with open(self.manifest_path, 'r') as f:
            data = json.load(f)
        return ReportManifest.from_dict(data)

    def _layer_db(self, layer_name: str):
        if self._database is None:
            raise RuntimeError("Database not opened. Use context manager or call open_database().")
        return self._database.prefixed_db(self._compute_layer_hash(layer_name))

    @staticmethod
    def _compute_layer_hash(layer_name: str) -> bytes:
        """Compute the 128-bit Murmur3 hash of a layer name as 16 big-endian bytes."""
        hash_value = mmh3.hash128(layer_name.encode('utf-8'), signed=False)
        return hash_value.to_bytes(16, byteorder='big')
