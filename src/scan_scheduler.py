"""
Daily scan job and plugin lifecycle.

The job:
    1. Does nothing if the daily scan is disabled
    2. Scans the theme templates and the permalink structure (always)
    3. Looks up the site URLs at Safe Browsing (if enabled)
    4. Verifies the core checksums (if enabled)
    5. Sends one notification covering every check that raised an alert

A failing check counts as "no alert" and never stops the other checks.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

import config
from checksum_client import ChecksumManifestClient
from checksum_verifier import ChecksumVerifier
from data_classes import CheckResult, Notification, ScanSettings, SiteInfo
from notifier import BaseNotifier, compose_notification, is_email
from reputation_client import ReputationClient
from settings_store import SettingsStore
from theme_scanner import ALERT_KEY, ThemeScanOrchestrator

logger = logging.getLogger(__name__)

JOB_ID = "antivirus_daily_cronjob"

DASHBOARD_NOTICE = "Virus suspected: The daily antivirus scan of your blog suggests alarm."


class DailyScheduler:
    """Runs one recurring callback in a background thread"""

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None):
        self._scheduler = scheduler or BackgroundScheduler(daemon=True)

    def schedule(self, callback: Callable[[], Any], interval_hours: Optional[int] = None) -> None:
        if self.is_scheduled():
            logger.info("Daily scan already scheduled")
            return

        hours = interval_hours or config.get_scan_interval_hours()
        self._scheduler.add_job(
            func=callback,
            trigger=IntervalTrigger(hours=hours),
            id=JOB_ID,
            name="AntiVirus daily scan",
            replace_existing=True,
            max_instances=1,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(f"Daily scan scheduled every {hours}h")

    def cancel(self) -> None:
        if self.is_scheduled():
            self._scheduler.remove_job(JOB_ID)
            logger.info("Daily scan unscheduled")

    def is_scheduled(self) -> bool:
        return self._scheduler.get_job(JOB_ID) is not None

    def next_run_time(self):
        job = self._scheduler.get_job(JOB_ID)
        return getattr(job, "next_run_time", None) if job else None

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)


class DailyScanJob:
    def __init__(
        self,
        settings: SettingsStore,
        site: SiteInfo,
        theme_scanner: ThemeScanOrchestrator,
        notifier: BaseNotifier,
        reputation_client: Optional[ReputationClient] = None,
        checksum_client: Optional[ChecksumManifestClient] = None,
        checksum_verifier: Optional[ChecksumVerifier] = None,
    ):
        self.settings = settings
        self.site = site
        self.theme_scanner = theme_scanner
        self.notifier = notifier
        self.reputation_client = reputation_client
        self.checksum_client = checksum_client
        self.checksum_verifier = checksum_verifier
        self._running = threading.Lock()

    def _run_check(self, name: str, check: Callable[[], CheckResult]) -> CheckResult:
        try:
            return check()
        except Exception as e:
            logger.exception(f"Check {name} failed, counting as no alert")
            return CheckResult(check=name, alert=False, error=str(e))

    def _check_theme(self) -> CheckResult:
        alert, details = self.theme_scanner.check_blog_internals(self.site.permalink_structure)
        return CheckResult(check="theme", alert=alert, details=details)

    def _check_safe_browsing(self, settings: ScanSettings) -> CheckResult:
        client = self.reputation_client or ReputationClient()
        urls = [self.site.home_url] + list(self.site.urls)
        flagged = client.check(urls, settings.safe_browsing_api_key or None)
        return CheckResult(check="safe_browsing", alert=flagged, details=[self.site.home_url] if flagged else [])

    def _check_checksums(self) -> CheckResult:
        verifier = self.checksum_verifier or ChecksumVerifier(
            self.site.root_dir,
            self.site.version,
            self.site.locale,
            client=self.checksum_client,
        )
        report = verifier.verify()
        details = [f"modified: {p}" for p in sorted(report.modified)]
        details += [f"unknown: {p}" for p in sorted(report.unknown)]
        return CheckResult(check="checksum", alert=report.has_alert, details=details)

    def evaluate(self, settings: ScanSettings) -> List[CheckResult]:
        """runs the enabled checks, each one isolated from the others"""
        results = [self._run_check("theme", self._check_theme)]

        if settings.safe_browsing_enabled:
            results.append(self._run_check("safe_browsing", lambda: self._check_safe_browsing(settings)))

        if settings.checksum_verifier_enabled:
            results.append(self._run_check("checksum", self._check_checksums))

        return results

    def run(self) -> Optional[List[CheckResult]]:
        """Scheduler callback. Returns None if disabled or if a run is already in progress."""
        if not self._running.acquire(blocking=False):
            logger.warning("Daily scan already running, skipping")
            return None

        try:
            settings = self.settings.load()
            if not settings.cronjob_enabled:
                logger.debug("Daily scan disabled")
                return None

            results = self.evaluate(settings)
            if any(r.alert for r in results):
                self.settings.set(ALERT_KEY, 1)

            notification = compose_notification(results, self.site, settings.notify_email)
            if notification:
                self.dispatch(notification)

            logger.info(
                "Daily scan finished: "
                + ", ".join(f"{r.check}={'alert' if r.alert else 'ok'}" for r in results)
            )
            return results
        finally:
            self._running.release()

    def dispatch(self, notification: Notification) -> None:
        try:
            self.notifier.send(notification.subject, notification.body, notification.to)
        except Exception:
            logger.exception("Notification dispatch failed")


class AntiVirusPlugin:
    """Install/uninstall hooks, the settings-save path and the dashboard notice"""

    def __init__(self, settings: SettingsStore, scheduler: DailyScheduler, job: DailyScanJob):
        self.settings = settings
        self.scheduler = scheduler
        self.job = job

    def activate(self) -> None:
        self.settings.ensure_defaults()
        if self.settings.get("cronjob_enabled"):
            self.scheduler.schedule(self.job.run)

    def deactivate(self) -> None:
        self.scheduler.cancel()

    def uninstall(self) -> None:
        self.scheduler.cancel()
        self.settings.delete()

    def save_settings(self, form: Dict[str, Any]) -> Dict[str, Any]:
        """Coerces the submitted form, (un)schedules the job on transitions and stores the options"""
        options = {
            "cronjob_enabled": int(bool(form.get("cronjob_enabled"))),
            "notify_email": (form.get("notify_email") or "").strip(),
            "safe_browsing_enabled": int(bool(form.get("safe_browsing_enabled"))),
            "safe_browsing_api_key": (form.get("safe_browsing_api_key") or "").strip(),
            "checksum_verifier_enabled": int(bool(form.get("checksum_verifier_enabled"))),
        }

        if not is_email(options["notify_email"]):
            options["notify_email"] = ""

        if not options["cronjob_enabled"]:
            options.update(
                notify_email="",
                safe_browsing_enabled=0,
                safe_browsing_api_key="",
                checksum_verifier_enabled=0,
            )

        was_enabled = bool(self.settings.get("cronjob_enabled"))
        if options["cronjob_enabled"] and not was_enabled:
            self.scheduler.schedule(self.job.run)
        elif not options["cronjob_enabled"] and was_enabled:
            self.scheduler.cancel()

        self.settings.update(options)
        return options

    def dashboard_notice(self) -> Optional[str]:
        if not self.settings.get(ALERT_KEY):
            return None
        return DASHBOARD_NOTICE

    def next_run(self) -> Optional[str]:
        when = self.scheduler.next_run_time()
        return when.strftime("%d.%m.%Y %H:%M:%S") if when else None
