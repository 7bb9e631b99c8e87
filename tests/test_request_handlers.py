import unittest
import html
import os
import sys
import tempfile

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from request_handlers import (
    ADMIN_CAPABILITY,
    AdminRequest,
    AdminRequestHandler,
    Operator,
    make_token,
    verify_token,
)
from settings_store import InMemorySettingsStore
from theme_collector import TemplateTreeCollector
from theme_scanner import ThemeScanOrchestrator
from whitelist_store import WhitelistStore
from test_theme_collector import make_file

SECRET = b"test-secret"
SESSION = "session-1"
ADMIN = Operator("admin", authenticated=True, capabilities=[ADMIN_CAPABILITY])


class TestTokens(unittest.TestCase):
    def test_roundtrip(self):
        token = make_token(SESSION, SECRET)
        self.assertTrue(verify_token(token, SESSION, SECRET, ttl=60))

    def test_other_session_or_secret(self):
        token = make_token(SESSION, SECRET)
        self.assertFalse(verify_token(token, "session-2", SECRET, ttl=60))
        self.assertFalse(verify_token(token, SESSION, b"wrong-secret", ttl=60))

    def test_expired(self):
        token = make_token(SESSION, SECRET)
        self.assertFalse(verify_token(token, SESSION, SECRET, ttl=-1))

    def test_tampered_payload(self):
        token = make_token(SESSION, SECRET)
        forged = make_token("session-2", b"other-secret").split(".")[0] + token[token.index("."):]
        self.assertFalse(verify_token(forged, "session-2", SECRET, ttl=60))

    def test_garbage(self):
        for token in [None, "", "nodot", "a.b", "!!!.???"]:
            self.assertFalse(verify_token(token, SESSION, SECRET, ttl=60))


class TestAdminRequestHandler(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        make_file(self.tmp.name, "themes/site/style.css", "/*\nTheme Name: Site\n*/")
        make_file(self.tmp.name, "themes/site/index.php", "<?php the_content();")
        make_file(self.tmp.name, "themes/site/footer.php", "<?php\necho '<iframe src=\"x\">';\n")

        self.settings = InMemorySettingsStore({"alert_pending": 1})
        self.whitelist = WhitelistStore(self.settings)
        orchestrator = ThemeScanOrchestrator(
            TemplateTreeCollector(self.tmp.name, "site"), self.whitelist, self.settings
        )
        self.handler = AdminRequestHandler(orchestrator, self.whitelist, secret=SECRET)
        self.token = self.handler.issue_token(SESSION)

    def _request(self, action, operator=ADMIN, token=None, **params):
        return AdminRequest(
            action=action,
            operator=operator,
            session_id=SESSION,
            token=self.token if token is None else token,
            params=params,
        )

    def test_get_theme_files_clears_alert(self):
        response = self.handler.handle(self._request("get_theme_files"))
        self.assertEqual(response["data"], ["/themes/site/footer.php", "/themes/site/index.php"])
        self.assertEqual(response["nonce"], self.token)
        self.assertEqual(self.settings.get("alert_pending"), 0)

    def test_check_theme_file_returns_escaped_triples(self):
        response = self.handler.handle(self._request("check_theme_file", theme_file="/themes/site/footer.php"))

        line, text, value = response["data"][0]
        self.assertEqual(line, 2)
        self.assertEqual(html.unescape(text), "echo '<@span@iframe@/span@ src=\"x\">';")
        self.assertNotIn("<", text)
        self.assertEqual(len(value), 32)
        self.assertEqual(response["whitelisted"], [])
        self.assertEqual(self.settings.get("alert_pending"), 1)

    def test_whitelisted_fingerprints_are_reported(self):
        response = self.handler.handle(self._request("check_theme_file", theme_file="/themes/site/footer.php"))
        value = response["data"][0][2]
        self.handler.handle(self._request("update_white_list", file_md5=value))

        response = self.handler.handle(self._request("check_theme_file", theme_file="/themes/site/footer.php"))
        self.assertEqual(response["whitelisted"], [value])

    def test_clean_file_and_traversal_return_nothing(self):
        self.assertIsNone(self.handler.handle(self._request("check_theme_file", theme_file="/themes/site/index.php")))
        self.assertIsNone(self.handler.handle(self._request("check_theme_file", theme_file="/../../etc/passwd")))
        self.assertIsNone(self.handler.handle(self._request("check_theme_file")))

    def test_update_white_list(self):
        valid = "d41d8cd98f00b204e9800998ecf8427e"
        response = self.handler.handle(self._request("update_white_list", file_md5=valid))
        self.assertEqual(response["data"], [valid])
        self.handler.handle(self._request("update_white_list", file_md5=valid))
        self.assertEqual(self.settings.get("whitelist"), valid)

    def test_update_white_list_rejects_invalid(self):
        self.assertIsNone(self.handler.handle(self._request("update_white_list", file_md5="not-32-hex")))
        self.assertIsNone(self.handler.handle(self._request("update_white_list")))
        self.assertEqual(self.settings.get("whitelist"), "")

    def test_unauthorized_requests_are_refused(self):
        guest = Operator("guest", authenticated=True, capabilities=["read"])
        anonymous = Operator("anon", capabilities=[ADMIN_CAPABILITY])
        for request in [
            self._request("get_theme_files", operator=guest),
            self._request("get_theme_files", operator=anonymous),
            self._request("get_theme_files", token="forged.token"),
        ]:
            self.assertIsNone(self.handler.handle(request))
        self.assertEqual(self.settings.get("alert_pending"), 1)

    def test_unknown_action(self):
        self.assertIsNone(self.handler.handle(self._request("delete_everything")))

    def test_expired_token_is_refused(self):
        handler = AdminRequestHandler(self.handler.theme_scanner, self.whitelist, secret=SECRET, ttl=-1)
        self.assertIsNone(handler.handle(self._request("get_theme_files")))
        self.assertEqual(self.settings.get("alert_pending"), 1)


if __name__ == "__main__":
    unittest.main()
