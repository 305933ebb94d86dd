"""Tests for layer sources and the layer writer."""
import gzip
import hashlib
import io
import tempfile
import unittest
from pathlib import Path

from layerdedup.errors import UpstreamResolutionFailure
from layerdedup.layer import (
    DOCKER_FOREIGN_LAYER, DOCKER_LAYER, OCI_LAYER, OCI_RESTRICTED_LAYER, OCI_UNCOMPRESSED_LAYER,
    FileLayer, copy_blob, is_filterable, write_layer,
)

from .archive_utils import make_archive, regular


def sha256(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


class FileLayerTest(unittest.TestCase):
    def test_uncompressed_layer(self):
        archive = make_archive([regular('a', b'content')])
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / 'layer.tar'
            path.write_bytes(archive)

            layer = FileLayer(path)

            self.assertEqual('layer.tar', layer.name)
            self.assertEqual(OCI_UNCOMPRESSED_LAYER, layer.media_type())
            with layer.open_uncompressed() as f:
                self.assertEqual(archive, f.read())

    def test_compressed_layer(self):
        archive = make_archive([regular('a', b'content')])
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / 'layer.tar.gz'
            path.write_bytes(gzip.compress(archive))

            layer = FileLayer(path)

            self.assertEqual(OCI_LAYER, layer.media_type())
            with layer.open_uncompressed() as f:
                self.assertEqual(archive, f.read())
            with layer.open_blob() as f:
                self.assertEqual(path.read_bytes(), f.read())

    def test_explicit_media_type(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / 'layer.tar.gz'
            path.write_bytes(gzip.compress(b''))

            self.assertEqual(DOCKER_FOREIGN_LAYER, FileLayer(path, DOCKER_FOREIGN_LAYER).media_type())

    def test_missing_blob(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            layer = FileLayer(Path(tmpdir) / 'missing.tar', OCI_UNCOMPRESSED_LAYER)

            with self.assertRaises(UpstreamResolutionFailure):
                layer.open_uncompressed()
            with self.assertRaises(UpstreamResolutionFailure):
                layer.open_blob()

    def test_filterable_media_types(self):
        self.assertTrue(is_filterable(DOCKER_LAYER))
        self.assertTrue(is_filterable(OCI_LAYER))
        self.assertTrue(is_filterable(OCI_UNCOMPRESSED_LAYER))
        self.assertFalse(is_filterable(DOCKER_FOREIGN_LAYER))
        self.assertFalse(is_filterable(OCI_RESTRICTED_LAYER))


class WriteLayerTest(unittest.TestCase):
    def test_uncompressed(self):
        data = make_archive([regular('a', b'content')])
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / 'out.tar'

            output = write_layer(io.BytesIO(data), destination)

            self.assertEqual(data, destination.read_bytes())
            self.assertEqual(sha256(data), output.diff_id)
            self.assertEqual(sha256(data), output.digest)
            self.assertEqual(len(data), output.size)

    def test_compressed(self):
        data = make_archive([regular('a', b'content' * 1000)])
        with tempfile.TemporaryDirectory() as tmpdir:
            first = Path(tmpdir) / 'first.tar.gz'
            second = Path(tmpdir) / 'second.tar.gz'

            output = write_layer(io.BytesIO(data), first, compress=True)
            again = write_layer(io.BytesIO(data), second, compress=True)

            blob = first.read_bytes()
            self.assertEqual(data, gzip.decompress(blob))
            self.assertEqual(sha256(data), output.diff_id)
            self.assertEqual(sha256(blob), output.digest)
            self.assertEqual(len(blob), output.size)
            # Same input, same blob
            self.assertEqual(blob, second.read_bytes())
            self.assertEqual(output, again)

    def test_copy_blob(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = Path(tmpdir) / 'foreign.tar.gz'
            source.write_bytes(gzip.compress(b'opaque'))
            destination = Path(tmpdir) / 'copy.tar.gz'

            output = copy_blob(FileLayer(source, DOCKER_FOREIGN_LAYER), destination)

            self.assertEqual(source.read_bytes(), destination.read_bytes())
            self.assertEqual('', output.diff_id)
            self.assertEqual(sha256(source.read_bytes()), output.digest)
            self.assertEqual(source.stat().st_size, output.size)


if __name__ == '__main__':
    unittest.main()
