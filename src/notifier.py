import re
import logging
import smtplib
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from typing import Dict, List, Optional

import config
from data_classes import CheckResult, Notification, SiteInfo

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$")

CHECK_TITLES = {
    "theme": "Virus suspected",
    "safe_browsing": "Safe Browsing Alert",
    "checksum": "Checksum Verifier Alert",
}


def is_email(value: Optional[str]) -> bool:
    return bool(value) and bool(EMAIL_PATTERN.match(value))


class BaseNotifier(ABC):
    """abstract base class for notification transports"""

    @abstractmethod
    def send(self, subject: str, body: str, to: Optional[str] = None) -> None:
        pass


class LoggingNotifier(BaseNotifier):
    """writes notifications to the log instead of sending them"""

    def __init__(self):
        self.sent: List[Notification] = []

    def send(self, subject: str, body: str, to: Optional[str] = None) -> None:
        self.sent.append(Notification(subject=subject, body=body, to=to))
        logger.info(f"NOTIFY → {to or 'admin'} | {subject}\n{body}")


class SmtpNotifier(BaseNotifier):
    def __init__(self, smtp_config: Optional[Dict] = None):
        self.smtp_config = smtp_config or config.get_smtp_config()

    def send(self, subject: str, body: str, to: Optional[str] = None) -> None:
        """fire and forget, delivery problems are logged"""
        if not to:
            logger.warning(f"No recipient for notification: {subject}")
            return

        message = MIMEText(body, "plain", "utf-8")
        message["Subject"] = subject
        message["From"] = self.smtp_config["sender"]
        message["To"] = to

        try:
            with smtplib.SMTP(self.smtp_config["host"], self.smtp_config["port"], timeout=30) as smtp:
                if self.smtp_config.get("user"):
                    smtp.starttls()
                    smtp.login(self.smtp_config["user"], self.smtp_config["password"])
                smtp.send_message(message)
            logger.info(f"Notification sent to {to}: {subject}")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Notification to {to} failed: {e}")


def _describe(result: CheckResult, site: SiteInfo) -> str:
    if result.check == "theme":
        lines = ["The daily antivirus scan of your blog suggests alarm."]
    elif result.check == "safe_browsing":
        lines = [
            "Google has found a problem on your site and possibly put it on the blacklist.",
            "Check the details at " + config.TRANSPARENCY_REPORT_URL.format(url=site.home_url),
        ]
    elif result.check == "checksum":
        lines = ["Official core files have been modified, or unknown files showed up:"]
    else:
        lines = [f"The {result.check} check raised an alert."]

    lines.extend(f"  - {detail}" for detail in result.details)
    return "\n".join(lines)


def compose_notification(
    results: List[CheckResult], site: SiteInfo, notify_email: str = ""
) -> Optional[Notification]:
    """
    Decides whether a run needs a notification, and with what content.
    One notification covers every check that raised an alert, None if no check did.
    """
    alerts = [r for r in results if r.alert]
    if not alerts:
        return None

    titles = [CHECK_TITLES.get(r.check, r.check) for r in alerts]
    subject = f"[{site.name}] {', '.join(titles)}"
    body = "\n\n".join(_describe(r, site) for r in alerts)
    body = f"{body}\r\n\r\n\r\n{config.NOTIFY_FOOTER}\r\n"

    to = notify_email if is_email(notify_email) else site.admin_email
    return Notification(subject=subject, body=body, to=to)
