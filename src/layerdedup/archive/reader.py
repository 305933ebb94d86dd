"""Streaming tar decoder that keeps the raw bytes of every header.

``tarfile`` in stream mode re-encodes nothing, but it also hides the header
bytes it consumed and silently stops at a corrupt header that is not the
first one. This reader decodes one logical entry at a time on top of
``tarfile.TarInfo.frombuf`` so that pass-through entries can be copied byte
for byte and every decoding problem is reported.
"""
import tarfile
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator

from ..errors import MalformedArchive, SourceReadFailure

BLOCKSIZE = tarfile.BLOCKSIZE

# Types whose size field does not announce any data blocks.
HEADER_ONLY_TYPES = frozenset((
    tarfile.LNKTYPE, tarfile.SYMTYPE, tarfile.CHRTYPE, tarfile.BLKTYPE, tarfile.DIRTYPE, tarfile.FIFOTYPE))

# Header records that describe the entry that follows them.
EXTENSION_TYPES = frozenset((
    tarfile.XHDTYPE, tarfile.SOLARIS_XHDTYPE, tarfile.GNUTYPE_LONGNAME, tarfile.GNUTYPE_LONGLINK))

DEFAULT_CHUNK_SIZE = 64 * 1024


def padding_size(size: int) -> int:
    return -size % BLOCKSIZE


def parse_pax_records(data: bytes) -> dict[str, str]:
    """Parse the ``"<length> <key>=<value>\\n"`` records of a pax extended header.

    Raises:
        ValueError: If a record is malformed
    """
    records: dict[str, str] = {}
    pos = 0
    while pos < len(data):
        if data[pos] == 0:
            # NUL padding after the last record
            break

        space = data.find(b' ', pos)
        if space < 0:
            raise ValueError(f"pax record without length at offset {pos}")

        length = int(data[pos:space])
        end = pos + length
        if length <= 0 or end > len(data) or data[end - 1] != 0x0a:
            raise ValueError(f"pax record with invalid length {length} at offset {pos}")

        key, sep, value = data[space + 1:end - 1].partition(b'=')
        if not sep:
            raise ValueError(f"pax record without '=' at offset {pos}")

        records[key.decode('utf-8', 'surrogateescape')] = value.decode('utf-8', 'surrogateescape')
        pos = end

    return records


@dataclass
class Entry:
    """One logical archive entry.

    Attributes:
        header: Raw header bytes exactly as read, including extension records
        info: Decoded metadata with pax and GNU long name overrides applied
        format: Header flavour of the source (``tarfile.*_FORMAT``)
        pax_headers: Extended header records attached to this entry
        ordinal: Zero-based position of the entry in the archive
    """
    header: bytes
    info: tarfile.TarInfo
    format: int
    ordinal: int
    pax_headers: dict[str, str] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return self.info.name

    @property
    def size(self) -> int:
        return self.info.size

    @property
    def type(self) -> bytes:
        return self.info.type

    @property
    def data_size(self) -> int:
        """Number of content bytes that follow the header."""
        if self.info.type in HEADER_ONLY_TYPES:
            return 0
        return self.info.size

    def is_regular(self) -> bool:
        return self.info.type in (tarfile.REGTYPE, tarfile.AREGTYPE)

    def is_sparse(self) -> bool:
        return self.info.type == tarfile.GNUTYPE_SPARSE or \
            any(key.startswith('GNU.sparse.') for key in self.pax_headers)


class ArchiveReader:
    """Iterates over the entries of a tar stream in archive order.

    The content of the current entry is consumed with :meth:`read_content` and
    :meth:`read_padding` (or :meth:`read_raw_content` for both). Content left
    unread is skipped when iteration advances.

    Raises (during iteration):
        MalformedArchive: A header cannot be decoded
        SourceReadFailure: The source fails or ends before the end-of-archive marker
    """

    def __init__(self, source: BinaryIO, *, encoding: str = 'utf-8', chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._source = source
        self._encoding = encoding
        self._chunk_size = chunk_size
        self._ordinal = 0
        self._remaining = 0
        self._padding = 0
        self._finished = False

    @property
    def encoding(self) -> str:
        return self._encoding

    def __iter__(self) -> Iterator[Entry]:
        while not self._finished:
            self.skip_content()
            entry = self._next_entry()
            if entry is None:
                self._finished = True
                return
            yield entry

    def read_content(self) -> Iterator[bytes]:
        """Yield the current entry's content in chunks, exactly ``data_size`` bytes in total."""
        while self._remaining:
            chunk = self._read_some(min(self._chunk_size, self._remaining))
            if not chunk:
                raise SourceReadFailure(
                    f"Archive ended inside the content of entry {self._ordinal - 1} "
                    f"({self._remaining} bytes missing)")
            self._remaining -= len(chunk)
            yield chunk

    def read_padding(self) -> bytes:
        """Return the raw bytes between the end of the content and the next block boundary."""
        if self._remaining:
            raise RuntimeError("Content of the current entry has not been read")
        padding = self._read_exact(self._padding, f"the padding of entry {self._ordinal - 1}")
        self._padding = 0
        return padding

    def read_raw_content(self) -> Iterator[bytes]:
        """Yield content and padding of the current entry as they appear in the source."""
        yield from self.read_content()
        padding = self.read_padding()
        if padding:
            yield padding

    def skip_content(self) -> None:
        for _ in self.read_raw_content():
            pass

    def _next_entry(self) -> Entry | None:
        raw = bytearray()
        pax_headers: dict[str, str] = {}
        long_name: str | None = None
        long_link: str | None = None
        header_format = tarfile.USTAR_FORMAT

        while True:
            block = self._read_exact(BLOCKSIZE, f"the header of entry {self._ordinal}", allow_empty=not raw)
            if not block:
                # A clean end of stream on a header boundary counts as the end of the archive.
                return None

            try:
                info = tarfile.TarInfo.frombuf(block, self._encoding, 'surrogateescape')
            except tarfile.EOFHeaderError:
                if raw:
                    raise MalformedArchive(f"End-of-archive marker after extended header of entry {self._ordinal}")
                return None
            except tarfile.HeaderError as e:
                raise MalformedArchive(f"Invalid header for entry {self._ordinal}: {e}") from e

            raw += block

            if info.type not in EXTENSION_TYPES:
                break

            payload = self._read_exact(
                info.size + padding_size(info.size), f"the extended header of entry {self._ordinal}")
            raw += payload
            data = payload[:info.size]
            if info.type in (tarfile.XHDTYPE, tarfile.SOLARIS_XHDTYPE):
                try:
                    pax_headers.update(parse_pax_records(data))
                except ValueError as e:
                    raise MalformedArchive(f"Invalid pax header for entry {self._ordinal}: {e}") from e
                header_format = tarfile.PAX_FORMAT
            elif info.type == tarfile.GNUTYPE_LONGNAME:
                long_name = tarfile.nts(data, self._encoding, 'surrogateescape')
                header_format = tarfile.GNU_FORMAT
            else:
                long_link = tarfile.nts(data, self._encoding, 'surrogateescape')
                header_format = tarfile.GNU_FORMAT

        if header_format == tarfile.USTAR_FORMAT and block[257:265] == tarfile.GNU_MAGIC:
            header_format = tarfile.GNU_FORMAT

        if info.type == tarfile.GNUTYPE_SPARSE and block[482]:
            while True:
                extension = self._read_exact(BLOCKSIZE, f"the sparse header of entry {self._ordinal}")
                raw += extension
                if not extension[504]:
                    break

        if long_name is not None:
            info.name = long_name
        if long_link is not None:
            info.linkname = long_link
        if pax_headers.get('path'):
            info.name = pax_headers['path']
        if pax_headers.get('linkpath'):
            info.linkname = pax_headers['linkpath']
        if pax_headers.get('size'):
            try:
                info.size = int(pax_headers['size'])
            except ValueError:
                raise MalformedArchive(
                    f"Invalid pax size for entry {self._ordinal}: {pax_headers['size']!r}") from None

        entry = Entry(bytes(raw), info, header_format, self._ordinal, pax_headers)
        self._ordinal += 1
        self._remaining = entry.data_size
        self._padding = padding_size(entry.data_size)
        return entry

    def _read_some(self, size: int) -> bytes:
        try:
            return self._source.read(size)
        except (OSError, EOFError, zlib.error) as e:
            raise SourceReadFailure(f"Failed to read archive source: {e}") from e

    def _read_exact(self, size: int, what: str, allow_empty: bool = False) -> bytes:
        data = self._read_some(size)
        if len(data) == size or (allow_empty and not data):
            return data

        parts = [data]
        received = len(data)
        while received < size:
            chunk = self._read_some(size - received)
            if not chunk:
                raise SourceReadFailure(f"Archive ended inside {what}")
            parts.append(chunk)
            received += len(chunk)
        return b''.join(parts)
