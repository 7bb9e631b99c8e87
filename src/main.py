import os
import re
import sys
import json
import time
import argparse
import logging
from dataclasses import asdict
from datetime import datetime

import config
from checksum_verifier import ChecksumVerifier
from data_classes import SiteInfo
from notifier import LoggingNotifier, SmtpNotifier
from reputation_client import ReputationClient
from scan_scheduler import AntiVirusPlugin, DailyScanJob, DailyScheduler
from settings_store import JsonFileSettingsStore
from theme_collector import TemplateTreeCollector
from theme_scanner import ThemeScanOrchestrator
from whitelist_store import WhitelistStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def detect_version(root_dir: str) -> str:
    """reads $wp_version from wp-includes/version.php"""
    try:
        with open(os.path.join(root_dir, "wp-includes", "version.php"), "r", encoding="utf-8") as f:
            match = re.search(r"\$wp_version\s*=\s*['\"]([^'\"]+)['\"]", f.read())
    except OSError:
        return ""
    return match.group(1) if match else ""


def build_site(args) -> SiteInfo:
    root_dir = os.path.abspath(args.root)
    return SiteInfo(
        name=args.site_name,
        home_url=args.home_url,
        admin_email=args.admin_email,
        root_dir=root_dir,
        content_dir=args.content_dir or os.path.join(root_dir, "wp-content"),
        version=args.wp_version or detect_version(root_dir),
        locale=args.locale,
        permalink_structure=args.permalink,
        active_theme=args.theme,
        urls=args.url or [],
    )


def build_plugin(args, site: SiteInfo):
    settings = JsonFileSettingsStore(args.settings)
    whitelist = WhitelistStore(settings)
    collector = TemplateTreeCollector(site.content_dir, site.active_theme)
    theme_scanner = ThemeScanOrchestrator(collector, whitelist, settings)
    notifier = LoggingNotifier() if args.dry_run else SmtpNotifier()
    job = DailyScanJob(settings, site, theme_scanner, notifier)
    return AntiVirusPlugin(settings, DailyScheduler(), job)


def cmd_scan(args, site: SiteInfo) -> int:
    """one-shot sweep that only reports, the alert flag is left alone"""
    plugin = build_plugin(args, site)
    theme_scanner = plugin.job.theme_scanner

    findings = []
    for finding, match in theme_scanner.sweep():
        entry = asdict(finding)
        entry.update(fingerprint=match.fingerprint, suppressed=match.suppressed)
        findings.append(entry)

    checks = {}
    if args.safe_browsing:
        checks["safe_browsing"] = ReputationClient().check([site.home_url] + site.urls, args.api_key)
    if args.checksums:
        try:
            report = ChecksumVerifier(site.root_dir, site.version, site.locale).verify()
            checks["checksum"] = {k: sorted(v) for k, v in asdict(report).items()}
        except Exception as e:
            logger.error(f"Checksum verification skipped: {e}")

    active = [f for f in findings if not f["suppressed"]]
    report = {
        "scan_info": {
            "site": site.home_url,
            "theme": site.active_theme,
            "scan_date": datetime.now().isoformat(),
            "total_findings": len(findings),
            "whitelisted": len(findings) - len(active),
        },
        "findings": findings,
        "checks": checks,
    }

    with open(args.out, "w") as f:
        json.dump(report, f, indent=2, default=str)

    print("Scan completed")
    print(f"Theme: {site.active_theme}")
    print(f"Total findings: {len(findings)} ({len(active)} not whitelisted)")
    for entry in active:
        print(f"  - {entry['file_path']}:{entry['line_number']} [{entry['rule_id']}] {entry['fingerprint']}")
    for name, outcome in checks.items():
        print(f"{name}: {outcome}")
    print(f"Detailed report saved to: {args.out}")

    if args.sarif:
        from sarif_export import export_to_sarif

        sarif_file = export_to_sarif(report, "results.sarif")
        print(f"SARIF exported: {sarif_file}")

    return 1 if active else 0


def cmd_run(args, site: SiteInfo) -> int:
    plugin = build_plugin(args, site)
    results = plugin.job.run()
    if results is None:
        print("Daily scan is disabled (cronjob_enabled = 0)")
        return 0
    for result in results:
        status = "ALERT" if result.alert else "ok"
        print(f"{result.check}: {status}" + (f" (error: {result.error})" if result.error else ""))
    return 1 if any(r.alert for r in results) else 0


def cmd_schedule(args, site: SiteInfo) -> int:
    plugin = build_plugin(args, site)
    plugin.activate()
    if not plugin.scheduler.is_scheduled():
        print("Daily scan is disabled (cronjob_enabled = 0)")
        return 0

    print(f"Next run: {plugin.next_run()}")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        plugin.scheduler.shutdown()
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Malware indicator scanner for WordPress installations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
            #One-shot theme scan
            %(prog)s scan --root /var/www/html --theme twentytwentyfour --out report.json
            #Theme scan plus checksums and Safe Browsing
            %(prog)s scan --root /var/www/html --theme mytheme --checksums --safe-browsing --home-url https://example.com
            #Run the daily job once against the stored settings
            %(prog)s run --root /var/www/html --theme mytheme --settings antivirus.json
        """,
    )
    parser.add_argument("command", choices=["scan", "run", "schedule"])
    parser.add_argument("--root", required=True, help="WordPress installation directory")
    parser.add_argument("--content-dir", help="Content directory (default: <root>/wp-content)")
    parser.add_argument("--theme", default=os.getenv("ANTIVIRUS_ACTIVE_THEME", ""), help="Active theme slug")
    parser.add_argument("--wp-version", help="Installed version (default: read from wp-includes/version.php)")
    parser.add_argument("--locale", default="en_US", help="Installed locale (default: en_US)")
    parser.add_argument("--home-url", default="", help="Home URL of the site")
    parser.add_argument("--url", action="append", help="Further URL to check at Safe Browsing")
    parser.add_argument("--site-name", default="WordPress", help="Site name used in notifications")
    parser.add_argument("--admin-email", default="", help="Fallback notification address")
    parser.add_argument("--permalink", default="", help="Permalink structure to check")
    parser.add_argument("--settings", default=config.get_settings_file(), help="Settings file")
    parser.add_argument("--out", default="report.json", help="Output file for JSON report (default: report.json)")
    parser.add_argument("--safe-browsing", action="store_true", help="Check the site URLs at Safe Browsing")
    parser.add_argument("--api-key", help="Safe Browsing API key")
    parser.add_argument("--checksums", action="store_true", help="Verify core file checksums")
    parser.add_argument("--sarif", action="store_true", help="Export theme findings in SARIF format")
    parser.add_argument("--dry-run", action="store_true", help="Log notifications instead of mailing them")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    commands = {"scan": cmd_scan, "run": cmd_run, "schedule": cmd_schedule}

    try:
        site = build_site(args)
        sys.exit(commands[args.command](args, site))
    except Exception as e:
        logger.error(f"Scan failed: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
