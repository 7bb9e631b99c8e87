import os
import logging
from typing import Iterable, List, Optional, Tuple

from data_classes import Finding, ThemeMatch
from pattern_scanner import PatternScanner, highlight
from patterns_registry import PERMALINK_RULE
from settings_store import SettingsStore
from theme_collector import TemplateTreeCollector
from whitelist_store import WhitelistStore, fingerprint

logger = logging.getLogger(__name__)

ALERT_KEY = "alert_pending"


class ThemeScanOrchestrator:
    """Runs the PatternScanner over the active theme and applies the whitelist"""

    def __init__(
        self,
        collector: TemplateTreeCollector,
        whitelist: WhitelistStore,
        settings: SettingsStore,
        scanner: Optional[PatternScanner] = None,
    ):
        self.collector = collector
        self.whitelist = whitelist
        self.settings = settings
        self.scanner = scanner or PatternScanner()

    def list_files(self) -> List[str]:
        """
        Returns the template files to scan. A fresh scan intent resets the alert,
        so the pending flag is cleared before any result exists.
        """
        self.settings.set(ALERT_KEY, 0)
        return self.collector.collect()

    def _match(self, finding: Finding, accepted: List[str]) -> ThemeMatch:
        value = fingerprint(finding.line_number, finding.matched_text)
        return ThemeMatch(
            line_number=finding.line_number,
            matched_text=finding.matched_text,
            fingerprint=value,
            suppressed=value in accepted,
        )

    def scan_file(self, path: str) -> List[ThemeMatch]:
        """
        Scans one template file (path as returned by list_files) for the interactive scan.

        Raises InvalidPath for paths outside the active theme. Never touches the alert flag.
        """
        full_path = self.collector.resolve(path)
        accepted = self.whitelist.all()
        return [
            self._match(finding, accepted)
            for finding in self.scanner.scan_findings(full_path, display_path=path)
        ]

    def sweep(self, file_set: Optional[Iterable[str]] = None) -> List[Tuple[Finding, ThemeMatch]]:
        """Scans every file of the set, skipping entries that no longer belong to the active theme"""
        current = self.collector.collect()
        paths = current if file_set is None else list(file_set)
        accepted = self.whitelist.all()

        results = []
        for path in paths:
            if path not in current:
                logger.warning(f"Skipping {path}, not a template file of the active theme")
                continue
            full_path = os.path.join(self.collector.content_dir, path.lstrip("/"))
            for finding in self.scanner.scan_findings(full_path, display_path=path):
                results.append((finding, self._match(finding, accepted)))

        logger.info(f"Theme sweep: {len(paths)} files, {len(results)} matches")
        return results

    def scan_all(self, file_set: Optional[Iterable[str]] = None) -> bool:
        """Full sweep for the scheduled run. Sets the alert flag if any match is not whitelisted."""
        alert = any(not match.suppressed for _, match in self.sweep(file_set))
        if alert:
            self.settings.set(ALERT_KEY, 1)
        return alert

    def check_permalink_structure(self, structure: str) -> List[str]:
        """Returns the highlighted structure once per code-like token found in it"""
        if not structure:
            return []
        return [highlight(structure, token) for token in dict.fromkeys(PERMALINK_RULE.find(structure))]

    def check_blog_internals(self, permalink_structure: str = "") -> Tuple[bool, List[str]]:
        """Theme sweep plus permalink check, returns the alert and human readable details"""
        details = []
        findings = [finding for finding, match in self.sweep() if not match.suppressed]
        for finding in findings:
            detail = f"{finding.file_path}:{finding.line_number} [{finding.rule_id}]"
            if detail not in details:
                details.append(detail)

        for structure in self.check_permalink_structure(permalink_structure):
            details.append(f"Permalink structure: {structure}")

        alert = bool(details)
        if alert:
            self.settings.set(ALERT_KEY, 1)
        return alert, details
