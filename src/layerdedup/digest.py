"""Content digests used as equality keys for file content.

A digest only decides whether two byte sequences are treated as identical. The
default is SHA-256, which is collision resistant. MD5 and 128-bit MurmurHash3
are faster but a collision between two different files would silently turn
one of them into a link to the other.
"""
import hashlib
from typing import Callable, Iterable, NamedTuple, Protocol

import mmh3


class Hasher(Protocol):
    def update(self, data: bytes, /) -> None: ...

    def digest(self) -> bytes: ...


class ContentDigest(NamedTuple):
    """A named digest algorithm."""
    name: str
    digest_size: int
    factory: Callable[[], Hasher]

    def new(self) -> Hasher:
        return self.factory()

    def compute(self, chunks: Iterable[bytes]) -> bytes:
        """Digest the concatenation of ``chunks``."""
        hasher = self.factory()
        for chunk in chunks:
            hasher.update(chunk)
        return hasher.digest()


DEFAULT_DIGEST = 'sha256'

DIGEST_ALGORITHMS: dict[str, ContentDigest] = {
    'sha256': ContentDigest('sha256', 32, hashlib.sha256),
    'md5': ContentDigest('md5', 16, lambda: hashlib.md5(usedforsecurity=False)),
    'mmh3': ContentDigest('mmh3', 16, mmh3.mmh3_x64_128),
}


def get_digest(name: str | ContentDigest) -> ContentDigest:
    """Look up a digest algorithm by name.

    Raises:
        ValueError: If the algorithm is unknown
    """
    if isinstance(name, ContentDigest):
        return name

    try:
        return DIGEST_ALGORITHMS[name]
    except KeyError:
        raise ValueError(
            f"Unknown digest algorithm: {name} (available: {', '.join(sorted(DIGEST_ALGORITHMS))})") from None
