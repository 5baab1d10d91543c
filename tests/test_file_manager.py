import io
import os
import tarfile
import tempfile
import unittest
from unittest.mock import patch, MagicMock
from ibuild.errors import FetchError
from ibuild.utils.file_manager import copy_path, download_and_extract, extract, remove_path


def make_tarball(path, members):
    """Write a gzipped tarball of ``members`` (name -> bytes)."""
    with tarfile.open(path, "w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return path


class TestFileManager(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = self.tmp.name

    def tearDown(self):
        self.tmp.cleanup()

    def test_extract_strips_components(self):
        archive = make_tarball(os.path.join(self.root, "foo-1.0.tar.gz"), {
            "foo-1.0/configure": b"#!/bin/sh\n",
            "foo-1.0/src/foo.c": b"int foo;\n",
        })
        destination = os.path.join(self.root, "foo")

        extract(archive, destination, strip_components=1)

        self.assertTrue(os.path.isfile(os.path.join(destination, "configure")))
        self.assertTrue(os.path.isfile(os.path.join(destination, "src", "foo.c")))
        self.assertFalse(os.path.exists(archive))

    def test_extract_rejects_path_traversal(self):
        archive = make_tarball(os.path.join(self.root, "evil.tar.gz"), {"../../evil.txt": b"x"})
        with self.assertRaises(FetchError):
            extract(archive, os.path.join(self.root, "out"))

    def test_extract_corrupt_archive(self):
        archive = os.path.join(self.root, "broken.tar.gz")
        with open(archive, "wb") as f:
            f.write(b"not a tarball")
        with self.assertRaises(FetchError):
            extract(archive, os.path.join(self.root, "out"))

    @patch('requests.get')
    def test_download_and_extract(self, mock_requests_get):
        archive = make_tarball(os.path.join(self.root, "source.tar.gz"), {"pkg/README": b"hello"})
        with open(archive, "rb") as f:
            payload = f.read()
        mock_response = MagicMock()
        mock_response.iter_content.return_value = [payload]
        mock_response.headers.get.return_value = str(len(payload))
        mock_requests_get.return_value.__enter__.return_value = mock_response
        destination = os.path.join(self.root, "checkout", "abc")

        download_and_extract("https://example.com/pkg.tar.gz", destination, strip_components=1)

        with open(os.path.join(destination, "README")) as f:
            self.assertEqual(f.read(), "hello")
        self.assertEqual(os.listdir(os.path.join(self.root, "checkout")), ["abc"])
        mock_requests_get.assert_called_with("https://example.com/pkg.tar.gz", stream=True, timeout=60)

    @patch('requests.get')
    def test_download_failure(self, mock_requests_get):
        import requests
        mock_requests_get.side_effect = requests.exceptions.ConnectionError("offline")
        with self.assertRaises(FetchError):
            download_and_extract("https://example.com/pkg.tar.gz", os.path.join(self.root, "pkg"))

    def test_copy_and_remove_path(self):
        source = os.path.join(self.root, "include")
        os.makedirs(os.path.join(source, "foo"))
        with open(os.path.join(source, "foo", "foo.h"), "w") as f:
            f.write("// foo")
        destination = os.path.join(self.root, "Products", "include")
        os.makedirs(os.path.join(destination, "bar"))

        copy_path(source, destination)
        self.assertTrue(os.path.exists(os.path.join(destination, "foo", "foo.h")))
        self.assertTrue(os.path.exists(os.path.join(destination, "bar")))

        remove_path(destination)
        self.assertFalse(os.path.exists(destination))
        remove_path(destination)

if __name__ == '__main__':
    unittest.main()
