import logging
from typing import Dict, List, Optional, Tuple

from data_classes import Finding
from errors import UnreadableFile
from patterns_registry import PatternRegistry

logger = logging.getLogger(__name__)

MARK_START = "@span@"
MARK_END = "@/span@"


def highlight(line: str, token: str) -> str:
    """Wraps every occurrence of the token in the line with the highlight markers"""
    return line.replace(token, f"{MARK_START}{token}{MARK_END}")


def read_file(path: str) -> str:
    """Reads a text file in one pass. Binaries (null bytes in the first kb) read as empty.

    Raises UnreadableFile if the file vanished or is not readable.
    """
    try:
        with open(path, "rb") as f:
            raw = f.read()
    except OSError as e:
        raise UnreadableFile(f"Could not read file: {path}: {e}") from e

    if b"\x00" in raw[:1024]:
        return ""
    return raw.decode("utf-8", errors="ignore")


class PatternScanner:
    """Applies the rules of a PatternRegistry to the lines of a single file"""

    def __init__(self, registry: Optional[PatternRegistry] = None):
        self.registry = registry or PatternRegistry()

    def check_line(self, line: str) -> List[Tuple[str, str]]:
        """
        Applies all rules to one line and returns (rule name, highlighted line) pairs.

        A token matched by several rules is reported once, under the first rule.
        """
        line = line.strip()
        if not line:
            return []

        results = []
        seen = set()
        for rule in self.registry.get_rules():
            for token in rule.find(line):
                if token in seen:
                    continue
                seen.add(token)
                results.append((rule.name, highlight(line, token)))

        return results

    def scan_text(self, content: str, file_path: str = "") -> List[Finding]:
        findings = []
        lines = content.replace("\r\n", "\n").replace("\r", "\n").split("\n")

        for num, line in enumerate(lines, 1):
            for rule_id, matched_text in self.check_line(line):
                findings.append(
                    Finding(
                        file_path=file_path,
                        line_number=num,
                        matched_text=matched_text,
                        rule_id=rule_id,
                    )
                )

        return findings

    def scan_findings(self, path: str, display_path: Optional[str] = None) -> List[Finding]:
        """Scans a file on disk. An unreadable file yields no findings."""
        try:
            content = read_file(path)
        except UnreadableFile as e:
            logger.debug(f"Skipping file: {e}")
            return []

        return self.scan_text(content, display_path or path)

    def scan_file(self, path: str) -> Dict[int, List[str]]:
        """Scans a file and groups the matched texts by line number"""
        lines: Dict[int, List[str]] = {}
        for finding in self.scan_findings(path):
            lines.setdefault(finding.line_number, []).append(finding.matched_text)
        return lines
