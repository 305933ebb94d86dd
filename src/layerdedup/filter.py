"""Single-pass filter that turns duplicate files of a layer archive into hard links.

Entries are decided strictly in archive order. A regular file larger than the
threshold is read once while its digest is computed; if an earlier regular
file had the same digest the entry is rewritten as a hard link to it,
otherwise it becomes the canonical copy for its digest. Every other entry is
copied byte for byte.
"""
import logging
import posixpath
import tempfile
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterable, Iterator, NamedTuple

from .archive.reader import DEFAULT_CHUNK_SIZE, ArchiveReader, Entry
from .archive.rewriter import ArchiveRewriter
from .digest import DEFAULT_DIGEST, ContentDigest, get_digest
from .errors import PassCancelled, UpstreamResolutionFailure
from .index.dedup_index import DedupIndex
from .utils.pipe import DEFAULT_MAX_CHUNKS, Pipe, PipeReader

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 10000
DEFAULT_SPOOL_SIZE = 32 * 1024 * 1024


class LinkDecision(NamedTuple):
    """A regular file that was rewritten as a hard link."""
    ordinal: int
    path: str
    target: str
    size: int


@dataclass
class PassStats:
    """Outcome of one filtering pass.

    Attributes:
        entries: Number of entries written (equal to the number read)
        candidates: Number of entries that were considered for linking
        indexed: Number of distinct digests recorded, i.e. canonical copies
        links: Entries rewritten as links, in archive order
        saved_bytes: Sum of the original sizes of all linked entries
    """
    entries: int = 0
    candidates: int = 0
    indexed: int = 0
    links: list[LinkDecision] = field(default_factory=list)
    saved_bytes: int = 0


def _path_key(path: str) -> str:
    return posixpath.normpath(path.lstrip('/'))


class LayerFilter:
    """Duplicate-to-hardlink filter for uncompressed layer archives.

    Args:
        threshold: Regular files of this size or smaller are never linked
        digest: Name of the content digest algorithm, or a ContentDigest
        chunk_size: Read size for content and chunk size of the output pipe
        max_chunks: Number of chunks the output pipe holds before the filter blocks
        spool_size: Candidate content above this size is buffered in a temporary file
        encoding: Encoding of header strings
    """

    def __init__(self,
                 threshold: int = DEFAULT_THRESHOLD,
                 digest: str | ContentDigest = DEFAULT_DIGEST,
                 *,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 max_chunks: int = DEFAULT_MAX_CHUNKS,
                 spool_size: int = DEFAULT_SPOOL_SIZE,
                 encoding: str = 'utf-8'):
        if threshold < 0:
            raise ValueError(f"threshold must not be negative: {threshold}")
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive: {chunk_size}")

        self._threshold = threshold
        self._digest = get_digest(digest)
        self._chunk_size = chunk_size
        self._max_chunks = max_chunks
        self._spool_size = spool_size
        self._encoding = encoding

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def digest(self) -> ContentDigest:
        return self._digest

    def is_link_candidate(self, entry: Entry) -> bool:
        return entry.is_regular() and not entry.is_sparse() and entry.size > self._threshold

    def run(self, source: BinaryIO, sink: BinaryIO, *,
            index: DedupIndex | None = None,
            is_cancelled: Callable[[], bool] | None = None) -> PassStats:
        """Filter the archive read from ``source`` into ``sink``.

        Args:
            source: Uncompressed tar stream
            sink: Writable binary stream receiving the filtered archive
            index: Index to fill; a fresh one is used if omitted
            is_cancelled: Polled between entries and content chunks

        Returns:
            Statistics of the pass

        Raises:
            MalformedArchive: A header of the source cannot be decoded
            SourceReadFailure: The source fails or is truncated
            PassCancelled: ``is_cancelled`` returned True
        """
        if index is None:
            index = DedupIndex()

        reader = ArchiveReader(source, encoding=self._encoding, chunk_size=self._chunk_size)
        rewriter = ArchiveRewriter(sink, encoding=self._encoding)
        stats = PassStats()
        # Canonical paths by normalized path, to notice when a later entry replaces one.
        canonical_digests: dict[str, bytes] = {}

        for entry in reader:
            self._check_cancelled(is_cancelled, entry)

            key = _path_key(entry.path)
            if key in canonical_digests:
                # A later entry with the same path shadows the canonical copy, links must not point at it anymore.
                index.forget(canonical_digests.pop(key))

            if not self.is_link_candidate(entry):
                rewriter.copy_entry(entry, self._checked(reader.read_raw_content(), is_cancelled, entry))
            else:
                stats.candidates += 1
                digest = self._copy_or_link(entry, reader, rewriter, index, stats, is_cancelled)
                if digest is not None:
                    canonical_digests[key] = digest

            stats.entries += 1

        rewriter.close()
        stats.indexed = len(index)
        return stats

    def opener(self, open_source: Callable[[], BinaryIO], *, name: str | None = None) -> Callable[[], PipeReader]:
        """Create a factory for filtered streams of one layer.

        Every call of the returned function opens the source again, starts an
        independent producer thread running :meth:`run` and returns the read
        side of its output pipe right away. The producer's :class:`PassStats`
        is available from ``PipeReader.result()`` once the stream is drained.

        Raises (from the returned function):
            UpstreamResolutionFailure: The source cannot be opened
        """
        label = name if name is not None else 'layer'

        def open_filtered() -> PipeReader:
            try:
                source = open_source()
            except OSError as e:
                raise UpstreamResolutionFailure(f"Cannot open content of {label}: {e}") from e

            pipe = Pipe(self._chunk_size, self._max_chunks)

            def produce(writer) -> PassStats:
                try:
                    return self._run_logged(label, source, writer, lambda: pipe.cancelled)
                finally:
                    source.close()

            return pipe.start(produce, name=f"layerdedup-{label}")

        return open_filtered

    def _run_logged(self, label: str, source: BinaryIO, sink, is_cancelled: Callable[[], bool]) -> PassStats:
        logger.info(f"Filtering {label} (threshold={self._threshold}, digest={self._digest.name})")
        try:
            stats = self.run(source, sink, is_cancelled=is_cancelled)
            sink.flush()
        except PassCancelled:
            logger.warning(f"Filtering {label} cancelled")
            raise
        except Exception as e:
            logger.error(f"Filtering {label} failed: {e}")
            raise
        logger.info(f"Done filtering {label} (entries={stats.entries}, links={len(stats.links)}, "
                    f"saved {stats.saved_bytes} bytes)")
        return stats

    def _copy_or_link(self, entry: Entry, reader: ArchiveReader, rewriter: ArchiveRewriter, index: DedupIndex,
                      stats: PassStats, is_cancelled: Callable[[], bool] | None) -> bytes | None:
        """Decide a link candidate; return its digest if it became canonical."""
        hasher = self._digest.new()
        with tempfile.SpooledTemporaryFile(max_size=self._spool_size) as buffer:
            for chunk in self._checked(reader.read_content(), is_cancelled, entry):
                hasher.update(chunk)
                buffer.write(chunk)
            padding = reader.read_padding()
            digest = hasher.digest()

            target = index.lookup(digest)
            if target is not None:
                logger.debug(f"Link {entry.path} => {target} ({entry.size} bytes)")
                rewriter.write_link(entry, target)
                stats.links.append(LinkDecision(entry.ordinal, entry.path, target, entry.size))
                stats.saved_bytes += entry.size
                return None

            index.record(digest, entry.path)
            buffer.seek(0)
            rewriter.copy_entry(entry, self._replay(buffer, padding))
            return digest

    def _replay(self, buffer, padding: bytes) -> Iterator[bytes]:
        while chunk := buffer.read(self._chunk_size):
            yield chunk
        if padding:
            yield padding

    @staticmethod
    def _checked(chunks: Iterable[bytes], is_cancelled: Callable[[], bool] | None, entry: Entry) -> Iterator[bytes]:
        for chunk in chunks:
            LayerFilter._check_cancelled(is_cancelled, entry)
            yield chunk

    @staticmethod
    def _check_cancelled(is_cancelled: Callable[[], bool] | None, entry: Entry):
        if is_cancelled is not None and is_cancelled():
            raise PassCancelled(f"Pass cancelled at entry {entry.ordinal} ({entry.path})")
