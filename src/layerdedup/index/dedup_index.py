"""Per-pass index from content digest to canonical entry path."""
from typing import Iterator


class DedupIndex:
    """Maps each content digest to the path of the first entry that produced it.

    The index belongs to exactly one filtering pass. Only paths that were
    emitted as regular (non-link) entries are ever recorded, so a link resolved
    through it always points at real content.
    """

    def __init__(self):
        self._paths: dict[bytes, str] = {}

    def __len__(self):
        return len(self._paths)

    def __contains__(self, digest: bytes) -> bool:
        return digest in self._paths

    def lookup(self, digest: bytes) -> str | None:
        """Return the canonical path for ``digest``, or None if it was not seen yet."""
        return self._paths.get(digest)

    def record(self, digest: bytes, path: str) -> None:
        """Record ``path`` as the canonical entry for ``digest``.

        Raises:
            ValueError: If the digest is already recorded
        """
        if digest in self._paths:
            raise ValueError(f"Digest {digest.hex()} already recorded for {self._paths[digest]}")
        self._paths[digest] = path

    def forget(self, digest: bytes) -> None:
        """Drop the mapping for ``digest``, once its canonical path has been replaced by a later entry."""
        self._paths.pop(digest, None)

    def items(self) -> Iterator[tuple[bytes, str]]:
        yield from self._paths.items()
