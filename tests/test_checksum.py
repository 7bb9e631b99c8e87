import unittest
from unittest.mock import Mock, patch
import hashlib
import os
import sys
import tempfile

import requests

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from checksum_client import ChecksumManifestClient
from checksum_verifier import ChecksumVerifier, md5_file
from data_classes import ChecksumManifest
from errors import MalformedResponse, RemoteUnavailable
from test_theme_collector import make_file


def md5(text):
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def response(status_code=200, payload=None, json_error=False):
    r = Mock()
    r.status_code = status_code
    if json_error:
        r.json.side_effect = ValueError("no json")
    else:
        r.json.return_value = payload
    return r


class TestChecksumManifestClient(unittest.TestCase):
    def setUp(self):
        self.client = ChecksumManifestClient(timeout=3)

    @patch("checksum_client.requests.get")
    def test_fetch_returns_manifest(self, mock_get):
        mock_get.return_value = response(payload={"checksums": {"index.php": md5("x")}})

        manifest = self.client.fetch("6.4.2", "de_DE")

        self.assertEqual(manifest.version, "6.4.2")
        self.assertEqual(manifest.checksums, {"index.php": md5("x")})
        _, kwargs = mock_get.call_args
        self.assertEqual(kwargs["params"], {"version": "6.4.2", "locale": "de_DE"})
        self.assertEqual(kwargs["timeout"], 3)

    @patch("checksum_client.requests.get")
    def test_fetch_accepts_answer_keyed_by_version(self, mock_get):
        mock_get.return_value = response(payload={"checksums": {"6.4.2": {"index.php": "abc"}}})
        self.assertEqual(self.client.fetch("6.4.2").checksums, {"index.php": "abc"})

    @patch("checksum_client.requests.get")
    def test_unknown_version_is_malformed(self, mock_get):
        mock_get.return_value = response(payload={"checksums": False})
        with self.assertRaises(MalformedResponse):
            self.client.fetch("99.0")

    @patch("checksum_client.requests.get")
    def test_invalid_json_is_malformed(self, mock_get):
        mock_get.return_value = response(json_error=True)
        with self.assertRaises(MalformedResponse):
            self.client.fetch("6.4.2")

    @patch("checksum_client.requests.get", side_effect=requests.Timeout("timed out"))
    def test_timeout_is_remote_unavailable(self, mock_get):
        with self.assertRaises(RemoteUnavailable):
            self.client.fetch("6.4.2")

    @patch("checksum_client.requests.get")
    def test_server_error_is_remote_unavailable(self, mock_get):
        mock_get.return_value = response(status_code=503)
        with self.assertRaises(RemoteUnavailable):
            self.client.fetch("6.4.2")

    def test_missing_version_is_malformed(self):
        with self.assertRaises(MalformedResponse):
            self.client.fetch("")


class TestChecksumVerifier(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = self.tmp.name
        self.client = Mock()

    def _verifier(self, checksums):
        self.client.fetch.return_value = ChecksumManifest("6.4.2", "en_US", checksums)
        return ChecksumVerifier(self.root, "6.4.2", client=self.client)

    def test_modified_and_unknown_files(self):
        make_file(self.root, "a.php", "one")
        make_file(self.root, "b.php", "changed")
        make_file(self.root, "c.php", "anything")

        report = self._verifier({"a.php": md5("one"), "b.php": md5("two")}).verify()

        self.assertEqual(report.modified, {"b.php"})
        self.assertEqual(report.unknown, {"c.php"})
        self.assertEqual(report.missing, set())
        self.assertTrue(report.has_alert)
        self.assertTrue(report.modified.isdisjoint(report.unknown))

    def test_clean_tree_has_no_alert(self):
        make_file(self.root, "index.php", "core")
        make_file(self.root, "wp-includes/version.php", "v")
        report = self._verifier(
            {"index.php": md5("core"), "wp-includes/version.php": md5("v")}
        ).verify()
        self.assertFalse(report.has_alert)

    def test_content_directory_is_out_of_scope(self):
        make_file(self.root, "wp-content/plugins/x/x.php", "plugin")
        make_file(self.root, "wp-content/index.php", "silence")
        make_file(self.root, "wp-config.php", "site config")
        report = self._verifier({"wp-content/index.php": md5("other")}).verify()
        self.assertEqual(report.modified, set())
        self.assertEqual(report.unknown, set())

    def test_unknown_file_in_core_directory(self):
        make_file(self.root, "wp-includes/class-wp.php", "core")
        make_file(self.root, "wp-includes/images/shell.php", "backdoor")
        make_file(self.root, "robots.txt", "User-agent: *")
        report = self._verifier({"wp-includes/class-wp.php": md5("core")}).verify()
        self.assertEqual(report.unknown, {"wp-includes/images/shell.php"})

    def test_non_php_debris_in_core_directory_is_not_unknown(self):
        make_file(self.root, "wp-admin/index.php", "admin")
        make_file(self.root, "wp-admin/error_log", "PHP Warning: ...")
        make_file(self.root, "wp-includes/.DS_Store", "\x00")
        report = self._verifier({"wp-admin/index.php": md5("admin")}).verify()
        self.assertEqual(report.unknown, set())
        self.assertFalse(report.has_alert)

    def test_missing_and_ignored_files(self):
        make_file(self.root, "readme.html", "translated readme")
        report = self._verifier(
            {"readme.html": md5("readme"), "wp-login.php": md5("login")}
        ).verify()
        self.assertEqual(report.missing, {"wp-login.php"})
        self.assertEqual(report.modified, set())
        self.assertFalse(report.has_alert)

    def test_manifest_failure_propagates(self):
        self.client.fetch.side_effect = RemoteUnavailable("down")
        verifier = ChecksumVerifier(self.root, "6.4.2", client=self.client)
        with self.assertRaises(RemoteUnavailable):
            verifier.verify()

    def test_md5_file(self):
        path = make_file(self.root, "f.txt", "hello")
        self.assertEqual(md5_file(path), md5("hello"))
        self.assertIsNone(md5_file(os.path.join(self.root, "nope")))


if __name__ == "__main__":
    unittest.main()
