import re
import hashlib
import logging
from typing import List

from settings_store import SettingsStore

logger = logging.getLogger(__name__)

WHITELIST_KEY = "whitelist"
FINGERPRINT_PATTERN = re.compile(r"^[a-f0-9]{32}$")


def fingerprint(line_number: int, matched_text: str) -> str:
    """md5 over the line number followed by the matched text, e.g. md5("12" + text)"""
    return hashlib.md5(f"{line_number}{matched_text}".encode("utf-8")).hexdigest()


def is_valid_fingerprint(value) -> bool:
    return isinstance(value, str) and bool(FINGERPRINT_PATTERN.fullmatch(value))


def parse_whitelist(raw: str) -> List[str]:
    """Parses the colon delimited form. Empty string is the empty list, duplicates are dropped."""
    entries = []
    for entry in (raw or "").split(":"):
        entry = entry.strip()
        if entry and entry not in entries:
            entries.append(entry)
    return entries


def serialize_whitelist(entries: List[str]) -> str:
    return ":".join(dict.fromkeys(entries))


class WhitelistStore:
    """
    Set of fingerprints an operator marked as "not a virus".

    Backed by the settings record, every read sees the persisted state. Additions merge into the
    persisted union under the settings lock, so concurrent additions never drop each other.
    """

    def __init__(self, settings: SettingsStore):
        self.settings = settings

    def all(self) -> List[str]:
        return parse_whitelist(self.settings.get(WHITELIST_KEY))

    def contains(self, value: str) -> bool:
        return value in self.all()

    def add(self, value: str) -> None:
        """idempotent, adding an existing fingerprint leaves the set unchanged"""
        self.settings.modify(
            WHITELIST_KEY,
            lambda raw: serialize_whitelist(parse_whitelist(raw) + [value]),
        )
        logger.info(f"Added {value} to the whitelist")

    def __len__(self) -> int:
        return len(self.all())
