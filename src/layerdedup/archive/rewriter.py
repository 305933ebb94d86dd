"""Serializer for filtered archive entries."""
import copy
import tarfile
from typing import BinaryIO, Iterable

from .reader import BLOCKSIZE, Entry

END_OF_ARCHIVE = bytes(2 * BLOCKSIZE)

# Records regenerated from the link header's own fields.
_REWRITTEN_PAX_KEYS = frozenset(('path', 'linkpath', 'size'))


def build_link_header(entry: Entry, target: str, encoding: str = 'utf-8') -> bytes:
    """Encode ``entry`` as a hard link to ``target`` with size zero.

    All other metadata (mode, owner, times, extended records) is kept. The
    header flavour of the source entry is reused unless it cannot hold the
    link target, in which case a pax header is written.
    """
    info = copy.copy(entry.info)
    info.type = tarfile.LNKTYPE
    info.linkname = target
    info.size = 0
    info.pax_headers = {key: value for key, value in entry.pax_headers.items() if key not in _REWRITTEN_PAX_KEYS}

    try:
        return info.tobuf(entry.format, encoding, 'surrogateescape')
    except ValueError:
        return info.tobuf(tarfile.PAX_FORMAT, encoding, 'surrogateescape')


class ArchiveRewriter:
    """Writes decided entries to an output stream.

    Pass-through entries are written from their raw source bytes, so they
    come out exactly as they went in.
    """

    def __init__(self, sink: BinaryIO, *, encoding: str = 'utf-8'):
        self._sink = sink
        self._encoding = encoding
        self._entries = 0
        self._closed = False

    @property
    def entries(self) -> int:
        """Number of entries written so far."""
        return self._entries

    def copy_entry(self, entry: Entry, raw_content: Iterable[bytes]) -> None:
        """Write the raw header of ``entry`` followed by its raw content and padding."""
        self._check_open()
        self._sink.write(entry.header)
        for chunk in raw_content:
            self._sink.write(chunk)
        self._entries += 1

    def write_link(self, entry: Entry, target: str) -> None:
        """Write ``entry`` as a hard link to ``target``; no content follows."""
        self._check_open()
        self._sink.write(build_link_header(entry, target, self._encoding))
        self._entries += 1

    def close(self) -> None:
        """Write the end-of-archive marker."""
        if not self._closed:
            self._sink.write(END_OF_ARCHIVE)
            self._closed = True

    def _check_open(self):
        if self._closed:
            raise ValueError("Archive rewriter is closed")
