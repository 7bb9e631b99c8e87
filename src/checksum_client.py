import logging
from typing import Optional

import requests

import config
from data_classes import ChecksumManifest
from errors import MalformedResponse, RemoteUnavailable

logger = logging.getLogger(__name__)

HEADERS = {"User-Agent": f"{config.CLIENT_ID}/{config.CLIENT_VERSION}", "Accept": "application/json"}


class ChecksumManifestClient:
    """Fetches the md5 checksums of the core files for one exact platform version"""

    def __init__(self, api_url: str = config.CHECKSUM_API_URL, timeout: Optional[int] = None):
        self.api_url = api_url
        self.timeout = timeout or config.get_http_timeout()

    def fetch(self, version: str, locale: str = "en_US") -> ChecksumManifest:
        """
        Raises RemoteUnavailable on network errors, timeouts and non 200 answers,
        MalformedResponse if the payload has no checksums for exactly this version.
        """
        if not version:
            raise MalformedResponse("No platform version given")

        try:
            r = requests.get(
                self.api_url,
                params={"version": version, "locale": locale},
                timeout=self.timeout,
                headers=HEADERS,
            )
        except requests.RequestException as e:
            raise RemoteUnavailable(f"Checksum API request failed: {e}") from e

        if r.status_code != 200:
            raise RemoteUnavailable(f"Checksum API answered with status {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            raise MalformedResponse(f"Checksum API returned invalid JSON: {e}") from e

        checksums = data.get("checksums") if isinstance(data, dict) else None

        # multi version answers are keyed by version
        if isinstance(checksums, dict) and isinstance(checksums.get(version), dict):
            checksums = checksums[version]

        if not isinstance(checksums, dict) or not checksums:
            raise MalformedResponse(f"No checksums available for version {version} ({locale})")

        if not all(isinstance(k, str) and isinstance(v, str) for k, v in checksums.items()):
            raise MalformedResponse("Checksum entries are not path to hash strings")

        logger.info(f"Fetched {len(checksums)} checksums for version {version} ({locale})")
        return ChecksumManifest(version=version, locale=locale, checksums=checksums)
