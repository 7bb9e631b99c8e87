import unittest
from argparse import Namespace
import json
import os
import sys
import tempfile

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from main import build_site, cmd_run, cmd_scan, detect_version
from test_theme_collector import make_file


class TestMain(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = self.tmp.name
        make_file(self.root, "wp-includes/version.php", "<?php\n$wp_version = '6.4.2';\n")
        make_file(self.root, "wp-content/themes/site/style.css", "/*\nTheme Name: Site\n*/")
        make_file(self.root, "wp-content/themes/site/index.php", "<?php\nsystem($_GET['c']);\n")

        self.args = Namespace(
            root=self.root,
            content_dir=None,
            theme="site",
            wp_version=None,
            locale="en_US",
            home_url="https://example.com/",
            url=None,
            site_name="Blog",
            admin_email="admin@example.com",
            permalink="",
            settings=os.path.join(self.root, "antivirus.json"),
            out=os.path.join(self.root, "report.json"),
            safe_browsing=False,
            api_key=None,
            checksums=False,
            sarif=False,
            dry_run=True,
            verbose=False,
        )

    def test_detect_version(self):
        self.assertEqual(detect_version(self.root), "6.4.2")
        self.assertEqual(detect_version(os.path.join(self.root, "missing")), "")

    def test_build_site(self):
        site = build_site(self.args)
        self.assertEqual(site.version, "6.4.2")
        self.assertEqual(site.content_dir, os.path.join(os.path.abspath(self.root), "wp-content"))
        self.assertEqual(site.urls, [])

    def test_scan_writes_report_and_leaves_alert_alone(self):
        exit_code = cmd_scan(self.args, build_site(self.args))

        self.assertEqual(exit_code, 1)
        with open(self.args.out) as f:
            report = json.load(f)
        self.assertEqual(report["scan_info"]["theme"], "site")
        self.assertEqual({f["line_number"] for f in report["findings"]}, {2})
        self.assertFalse(os.path.exists(self.args.settings))

    def test_run_respects_disabled_cronjob(self):
        self.assertEqual(cmd_run(self.args, build_site(self.args)), 0)

    def test_run_enabled(self):
        with open(self.args.settings, "w") as f:
            json.dump({"cronjob_enabled": 1}, f)

        self.assertEqual(cmd_run(self.args, build_site(self.args)), 1)

        with open(self.args.settings) as f:
            self.assertEqual(json.load(f)["alert_pending"], 1)


if __name__ == "__main__":
    unittest.main()
