"""Tests for the layerdedup command line."""
import gzip
import io
import sys
import tempfile
import unittest
from pathlib import Path

from layerdedup.cli import layerdedup_main

from .archive_utils import content, make_archive, read_members, regular


def duplicate_archive(seed: int, size: int = 20000) -> bytes:
    data = content(size, seed)
    return make_archive([regular('a', data), regular('b', data)])


class CliTest(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.tmp = Path(self._tmpdir.name)

    def run_main(self, *argv: str) -> tuple[int, str, str]:
        captured_output = io.StringIO()
        captured_error = io.StringIO()
        old_stdout, old_stderr = sys.stdout, sys.stderr
        try:
            sys.stdout, sys.stderr = captured_output, captured_error
            code = layerdedup_main(list(argv))
        finally:
            sys.stdout, sys.stderr = old_stdout, old_stderr
        return code, captured_output.getvalue(), captured_error.getvalue()

    def write_blob(self, name: str, data: bytes) -> Path:
        path = self.tmp / name
        path.write_bytes(data)
        return path

    def test_filter(self):
        source = self.write_blob('layer.tar', duplicate_archive(1))
        output_dir = self.tmp / 'out'

        code, out, err = self.run_main('filter', '--output-dir', str(output_dir), str(source))

        self.assertEqual(0, code, err)
        self.assertIn("layer.tar: filtered, 1 links, 20000 bytes saved", out)
        members = read_members((output_dir / 'layer.tar').read_bytes())
        self.assertTrue(members[1][0].islnk())

    def test_filter_gzip_and_describe(self):
        source = self.write_blob('layer.tar.gz', gzip.compress(duplicate_archive(2)))
        output_dir = self.tmp / 'out'
        report_dir = self.tmp / 'report'

        code, _, err = self.run_main(
            'filter', '--output-dir', str(output_dir), '--gzip', '--report', str(report_dir), str(source))
        self.assertEqual(0, code, err)
        self.assertTrue((output_dir / 'layer.tar.gz').exists())

        code, out, _ = self.run_main('describe', '--links', '--bytes', str(report_dir))
        self.assertEqual(0, code)
        self.assertIn("Total saved: 20000", out.splitlines())
        self.assertIn("  b => a (20000)", out.splitlines())

    def test_threshold_option(self):
        source = self.write_blob('layer.tar', duplicate_archive(3, size=500))

        code, out, _ = self.run_main('filter', '--output-dir', str(self.tmp / 'default'), str(source))
        self.assertEqual(0, code)
        self.assertIn("layer.tar: filtered\n", out)

        code, out, _ = self.run_main(
            'filter', '--output-dir', str(self.tmp / 'low'), '--threshold', '100', str(source))
        self.assertEqual(0, code)
        self.assertIn("1 links", out)

    def test_config_file(self):
        source = self.write_blob('layer.tar', duplicate_archive(4, size=500))
        config = self.write_blob('layerdedup.toml', b'[filter]\nthreshold = 100\ndigest = "mmh3"\n')

        code, out, err = self.run_main(
            '--config', str(config), 'filter', '--output-dir', str(self.tmp / 'out'), str(source))

        self.assertEqual(0, code, err)
        self.assertIn("1 links", out)

    def test_failed_layer_exit_code(self):
        good = self.write_blob('good.tar', duplicate_archive(5))
        bad = bytearray(duplicate_archive(6))
        bad[0] ^= 0xff
        bad_path = self.write_blob('bad.tar', bytes(bad))

        code, out, err = self.run_main('filter', '--output-dir', str(self.tmp / 'out'), str(good), str(bad_path))

        self.assertEqual(1, code)
        self.assertIn("good.tar: filtered", out)
        self.assertIn("bad.tar: failed: MalformedArchive", err)
        self.assertFalse((self.tmp / 'out' / 'bad.tar').exists())

    def test_fail_fast(self):
        bad = bytearray(duplicate_archive(7))
        bad[0] ^= 0xff
        bad_path = self.write_blob('bad.tar', bytes(bad))

        code, _, err = self.run_main('filter', '--output-dir', str(self.tmp / 'out'), '--fail-fast', str(bad_path))

        self.assertEqual(1, code)
        self.assertIn("Error: MalformedArchive", err)

    def test_invalid_digest(self):
        source = self.write_blob('layer.tar', duplicate_archive(8))

        code, _, err = self.run_main(
            'filter', '--output-dir', str(self.tmp / 'out'), '--digest', 'crc32', str(source))

        self.assertEqual(1, code)
        self.assertIn("Unknown digest algorithm", err)

    def test_describe_missing_report(self):
        code, _, err = self.run_main('describe', str(self.tmp / 'missing'))

        self.assertEqual(1, code)
        self.assertIn("Error:", err)

    def test_no_command(self):
        code, out, _ = self.run_main()

        self.assertEqual(2, code)
        self.assertIn("usage: layerdedup", out)


if __name__ == '__main__':
    unittest.main()
