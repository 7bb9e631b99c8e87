import os
import logging
import secrets

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

SETTINGS_OPTION = "antivirus"

CHECKSUM_API_URL = "https://api.wordpress.org/core/checksums/1.0/"
SAFE_BROWSING_API_URL = "https://safebrowsing.googleapis.com/v4/threatMatches:find"
TRANSPARENCY_REPORT_URL = (
    "https://transparencyreport.google.com/safe-browsing/search?url={url}&hl=en"
)

CLIENT_ID = "wpantivirus"
CLIENT_VERSION = "1.5.0"

NOTIFY_FOOTER = "Notify message by AntiVirus for WordPress\r\nhttp://wpantivirus.com"

# directories holding user content, never part of the core manifest
NON_CORE_DIRECTORIES = ("wp-content",)
# files rewritten by localized installs
CHECKSUM_IGNORED_FILES = ("wp-config-sample.php", "readme.html", "license.txt")
CORE_DIRECTORIES = ("wp-admin", "wp-includes")


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        logger.warning(f"Invalid {name} env var, using default {default}")
        return default


def get_settings_file() -> str:
    return os.getenv("ANTIVIRUS_SETTINGS_FILE", "antivirus.json")


def get_http_timeout() -> int:
    """Timeout in seconds applied to every remote API call"""
    return _get_int("ANTIVIRUS_HTTP_TIMEOUT", 10)


def get_scan_interval_hours() -> int:
    return _get_int("ANTIVIRUS_SCAN_INTERVAL_HOURS", 24)


def get_safe_browsing_fallback_key() -> str:
    """Shared Safe Browsing key, used when the site owner did not configure one"""
    return os.getenv("ANTIVIRUS_SAFE_BROWSING_FALLBACK_KEY", "")


def get_token_secret() -> bytes:
    """Anti-forgery token secret from env. Without one a per-process secret is generated,
    so tokens do not survive a restart.
    """
    secret = os.getenv("ANTIVIRUS_TOKEN_SECRET", "")
    if not secret:
        logger.warning("ANTIVIRUS_TOKEN_SECRET not set, generating a per-process secret")
        return secrets.token_bytes(32)
    return secret.encode("utf-8")


def get_token_ttl() -> int:
    return _get_int("ANTIVIRUS_TOKEN_TTL", 43200)


def get_smtp_config() -> dict:
    return {
        "host": os.getenv("ANTIVIRUS_SMTP_HOST", "localhost"),
        "port": _get_int("ANTIVIRUS_SMTP_PORT", 25),
        "user": os.getenv("ANTIVIRUS_SMTP_USER", ""),
        "password": os.getenv("ANTIVIRUS_SMTP_PASSWORD", ""),
        "sender": os.getenv("ANTIVIRUS_SMTP_SENDER", "antivirus@localhost"),
    }
