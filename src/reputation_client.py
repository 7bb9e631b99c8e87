import logging
from typing import Dict, Iterable, Optional

import requests

import config
from errors import MalformedResponse, RemoteUnavailable

logger = logging.getLogger(__name__)

CLEAN = "clean"
FLAGGED = "flagged"

# verdict key for a match that names no url
UNATTRIBUTED = "*"

THREAT_TYPES = [
    "THREAT_TYPE_UNSPECIFIED",
    "MALWARE",
    "SOCIAL_ENGINEERING",
    "UNWANTED_SOFTWARE",
    "POTENTIALLY_HARMFUL_APPLICATION",
]


class ReputationClient:
    """Google Safe Browsing (v4) lookup of the URLs a site references"""

    def __init__(
        self,
        api_url: str = config.SAFE_BROWSING_API_URL,
        fallback_key: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.api_url = api_url
        self.fallback_key = fallback_key if fallback_key is not None else config.get_safe_browsing_fallback_key()
        self.timeout = timeout or config.get_http_timeout()

    def _build_request(self, urls) -> Dict:
        return {
            "client": {"clientId": config.CLIENT_ID, "clientVersion": config.CLIENT_VERSION},
            "threatInfo": {
                "threatTypes": THREAT_TYPES,
                "platformTypes": ["ANY_PLATFORM"],
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": url} for url in urls],
            },
        }

    def lookup(self, urls: Iterable[str], api_key: Optional[str] = None) -> Dict[str, str]:
        """
        Batch lookup, returns a verdict (clean | flagged) per queried URL.

        Raises RemoteUnavailable for network errors, timeouts, rate limiting and rejected keys,
        MalformedResponse for payloads that are not a threatMatches answer.
        """
        urls = sorted(set(u for u in urls if u))
        if not urls:
            return {}

        key = api_key or self.fallback_key
        if not key:
            raise RemoteUnavailable("No Safe Browsing API key available")

        try:
            r = requests.post(
                self.api_url,
                params={"key": key},
                json=self._build_request(urls),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteUnavailable(f"Safe Browsing request failed: {e}") from e

        if r.status_code == 429:
            raise RemoteUnavailable("Safe Browsing rate limit exceeded")
        if r.status_code in (400, 401, 403):
            hint = "custom" if api_key else "fallback"
            raise RemoteUnavailable(f"Safe Browsing rejected the {hint} API key (status {r.status_code})")
        if r.status_code != 200:
            raise RemoteUnavailable(f"Safe Browsing answered with status {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            raise MalformedResponse(f"Safe Browsing returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedResponse("Safe Browsing answer is not an object")

        matches = data.get("matches", [])
        if not isinstance(matches, list):
            raise MalformedResponse("Safe Browsing matches is not a list")

        verdicts = {url: CLEAN for url in urls}
        for match in matches:
            if not isinstance(match, dict):
                match = {"entry": match}
            threat = match.get("threat")
            url = threat.get("url") if isinstance(threat, dict) else None
            if not url:
                logger.warning(f"Safe Browsing match without threat url, counted as flagged: {match!r}")
                url = UNATTRIBUTED
            verdicts[url] = FLAGGED
            logger.warning(f"Safe Browsing flagged {url}: {match.get('threatType', 'unknown')}")

        return verdicts

    def check(self, urls: Iterable[str], api_key: Optional[str] = None) -> bool:
        """True if any URL is flagged. Every failure counts as not flagged."""
        try:
            verdicts = self.lookup(urls, api_key)
        except (RemoteUnavailable, MalformedResponse) as e:
            logger.warning(f"Safe Browsing check skipped: {e}")
            return False

        return FLAGGED in verdicts.values()
