import re
from typing import Callable, Dict, List, Optional, Set
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Finding:
    """Represents a single suspicious line detected in a template file"""

    file_path: str
    line_number: int
    matched_text: str
    rule_id: str


@dataclass
class ScanRule:
    """Defines a heuristic rule that is applied to every line of a template file.

    The regex extracts the suspicious token (group 1 if present, else the whole match).
    `accept` optionally filters extracted tokens, e.g. to only keep reads of internal options.
    """

    name: str
    regex: str
    description: str
    flags: int = 0
    accept: Optional[Callable[[str], bool]] = None

    def find(self, line: str) -> List[str]:
        tokens = []
        for match in re.finditer(self.regex, line, self.flags):
            token = match.group(1) if match.groups() else match.group(0)
            if not token:
                continue
            if self.accept is not None and not self.accept(token):
                continue
            tokens.append(token)
        return tokens


@dataclass(frozen=True)
class ThemeMatch:
    """A finding as returned to the operator, with its whitelist state"""

    line_number: int
    matched_text: str
    fingerprint: str
    suppressed: bool = False


@dataclass
class ThemeInfo:
    name: str
    slug: str
    directory: str
    parent_directory: Optional[str] = None


@dataclass
class SiteInfo:
    """Facts about the installation that the checks need"""

    name: str
    home_url: str
    admin_email: str
    root_dir: str
    content_dir: str
    version: str
    locale: str = "en_US"
    permalink_structure: str = ""
    active_theme: str = ""
    urls: List[str] = field(default_factory=list)


@dataclass
class ChecksumManifest:
    version: str
    locale: str
    checksums: Dict[str, str] = field(default_factory=dict)


@dataclass
class VerificationReport:
    """Result of a checksum verification. `missing` is informational only."""

    modified: Set[str] = field(default_factory=set)
    unknown: Set[str] = field(default_factory=set)
    missing: Set[str] = field(default_factory=set)

    @property
    def has_alert(self) -> bool:
        return bool(self.modified or self.unknown)


@dataclass
class ScanSettings:
    cronjob_enabled: int = 0
    alert_pending: int = 0
    safe_browsing_enabled: int = 0
    safe_browsing_api_key: str = ""
    checksum_verifier_enabled: int = 0
    notify_email: str = ""
    whitelist: str = ""


@dataclass
class CheckResult:
    """Outcome of one check of the daily run"""

    check: str
    alert: bool
    details: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class Notification:
    subject: str
    body: str
    to: Optional[str] = None
