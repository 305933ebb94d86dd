"""Layer sources and sinks around the filter.

A layer source supplies the uncompressed archive of one image layer together
with its media type. Foreign (non-distributable) layers are hosted elsewhere
and must be carried through untouched. The sink drains a filtered stream into
a blob file, optionally gzip-compressed, and computes the identity of the new
layer.
"""
import gzip
import hashlib
import logging
import os
import shutil
from pathlib import Path
from typing import BinaryIO, NamedTuple, Protocol

from .errors import UpstreamResolutionFailure

logger = logging.getLogger(__name__)

DOCKER_LAYER = 'application/vnd.docker.image.rootfs.diff.tar.gzip'
DOCKER_UNCOMPRESSED_LAYER = 'application/vnd.docker.image.rootfs.diff.tar'
DOCKER_FOREIGN_LAYER = 'application/vnd.docker.image.rootfs.foreign.diff.tar.gzip'
OCI_LAYER = 'application/vnd.oci.image.layer.v1.tar+gzip'
OCI_UNCOMPRESSED_LAYER = 'application/vnd.oci.image.layer.v1.tar'
OCI_RESTRICTED_LAYER = 'application/vnd.oci.image.layer.nondistributable.v1.tar+gzip'
OCI_UNCOMPRESSED_RESTRICTED_LAYER = 'application/vnd.oci.image.layer.nondistributable.v1.tar'

FOREIGN_MEDIA_TYPES = frozenset((DOCKER_FOREIGN_LAYER, OCI_RESTRICTED_LAYER, OCI_UNCOMPRESSED_RESTRICTED_LAYER))

GZIP_MAGIC = b'\x1f\x8b'

COPY_BUFFER_SIZE = 1024 * 1024


def is_filterable(media_type: str) -> bool:
    """Return False for layers whose content must pass through as an opaque reference."""
    return media_type not in FOREIGN_MEDIA_TYPES


class LayerSource(Protocol):
    @property
    def name(self) -> str: ...

    def media_type(self) -> str: ...

    def open_uncompressed(self) -> BinaryIO: ...

    def open_blob(self) -> BinaryIO: ...


class FileLayer:
    """A layer blob stored in a local file, gzip-compressed or not.

    Args:
        path: Path of the blob
        media_type: Media type of the layer; derived from the content if omitted
    """

    def __init__(self, path: str | os.PathLike, media_type: str | None = None):
        self._path = Path(path)
        self._media_type = media_type

    @property
    def name(self) -> str:
        return self._path.name

    @property
    def path(self) -> Path:
        return self._path

    def media_type(self) -> str:
        if self._media_type is None:
            self._media_type = OCI_LAYER if self._is_compressed() else OCI_UNCOMPRESSED_LAYER
        return self._media_type

    def open_blob(self) -> BinaryIO:
        try:
            return open(self._path, 'rb')
        except OSError as e:
            raise UpstreamResolutionFailure(f"Cannot open layer {self._path}: {e}") from e

    def open_uncompressed(self) -> BinaryIO:
        if not self._is_compressed():
            return self.open_blob()

        try:
            return gzip.open(self._path, 'rb')
        except OSError as e:
            raise UpstreamResolutionFailure(f"Cannot open layer {self._path}: {e}") from e

    def _is_compressed(self) -> bool:
        with self.open_blob() as blob:
            return blob.read(len(GZIP_MAGIC)) == GZIP_MAGIC


class LayerOutput(NamedTuple):
    """Identity of a written layer.

    Attributes:
        diff_id: sha256 of the uncompressed archive, as listed in the image config
        digest: sha256 of the blob as written, as listed in the image manifest
        size: Size of the blob in bytes
    """
    diff_id: str
    digest: str
    size: int


class _HashingWriter:
    def __init__(self, target: BinaryIO):
        self._target = target
        self.hasher = hashlib.sha256()
        self.size = 0

    def write(self, data) -> int:
        self.hasher.update(data)
        self.size += len(data)
        return self._target.write(data)

    def flush(self):
        self._target.flush()


def write_layer(stream: BinaryIO, destination: Path, compress: bool = False) -> LayerOutput:
    """Drain ``stream`` into ``destination`` and return the identity of the result.

    Compression uses gzip level 9 with a zero timestamp, so the same archive
    always yields the same blob. Errors raised while reading ``stream``
    propagate unchanged; the caller owns the partially written file.
    """
    with open(destination, 'wb') as output:
        blob = _HashingWriter(output)
        uncompressed_hasher = hashlib.sha256()

        if compress:
            with gzip.GzipFile(fileobj=blob, mode='wb', compresslevel=9, mtime=0) as compressor:
                while chunk := stream.read(COPY_BUFFER_SIZE):
                    uncompressed_hasher.update(chunk)
                    compressor.write(chunk)
        else:
            while chunk := stream.read(COPY_BUFFER_SIZE):
                uncompressed_hasher.update(chunk)
                blob.write(chunk)

    diff_id = f"sha256:{uncompressed_hasher.hexdigest()}"
    digest = f"sha256:{blob.hasher.hexdigest()}"
    logger.info(f"Wrote {destination} ({blob.size} bytes, diff_id={diff_id})")
    return LayerOutput(diff_id, digest, blob.size)


def copy_blob(layer: LayerSource, destination: Path) -> LayerOutput:
    """Copy a layer blob unchanged, for layers that bypass the filter."""
    with layer.open_blob() as blob, open(destination, 'wb') as output:
        shutil.copyfileobj(blob, output, COPY_BUFFER_SIZE)

    digest = _file_sha256(destination)
    # A foreign blob is not read for its diff id; the source's config already carries it.
    return LayerOutput('', digest, destination.stat().st_size)


def _file_sha256(path: Path) -> str:
    with open(path, 'rb') as f:
        return f"sha256:{hashlib.file_digest(f, hashlib.sha256).hexdigest()}"
