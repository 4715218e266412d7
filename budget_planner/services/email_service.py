"""Plain-text email delivery for budget alerts and digests."""

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List, Optional, Sequence

from budget_planner.config import Settings, settings as default_settings
from budget_planner.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class AlertEmailItem:
    """One alert line in an email body."""

    title: str
    message: str
    severity: str
    category_name: str = ""


class EmailService:
    """Sends mail through the configured SMTP server."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    def is_configured(self) -> bool:
        """True when an SMTP host and a sender address are set."""
        return bool(self.config.smtp_host and self.config.smtp_from)

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(
            self.config.smtp_host, self.config.smtp_port, timeout=self.config.smtp_timeout
        ) as smtp:
            if self.config.smtp_use_tls:
                smtp.starttls()
            if self.config.smtp_user and self.config.smtp_password:
                smtp.login(self.config.smtp_user, self.config.smtp_password)
            smtp.send_message(message)

    async def send_mail(self, to: str, subject: str, body: str) -> None:
        """Send a plain-text email.

        Args:
            to: Recipient address
            subject: Subject line
            body: Plain-text body

        Raises:
            RuntimeError: If SMTP is not configured
            smtplib.SMTPException: If delivery fails
        """
        if not self.is_configured():
            raise RuntimeError("SMTP is not configured")

        message = EmailMessage()
        message["From"] = self.config.smtp_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        await asyncio.to_thread(self._deliver, message)

        logger.info("Email sent", to=to, subject=subject)


def _greeting(first_name: str) -> str:
    return f"Hi {first_name}," if first_name else "Hi,"


def _alert_lines(alerts: Sequence[AlertEmailItem]) -> List[str]:
    lines = []
    for alert in alerts:
        lines.append(f"[{alert.severity}] {alert.title}")
        lines.append(f"  {alert.message}")
    return lines


def build_immediate_alert_body(
    first_name: str, alerts: Sequence[AlertEmailItem], app_url: str
) -> str:
    """Body of the email sent when critical alerts are raised."""
    lines = [
        _greeting(first_name),
        "",
        "The following budget alerts need your attention:",
        "",
        *_alert_lines(alerts),
        "",
        f"Review your budget: {app_url.rstrip('/')}/budgets",
    ]
    return "\n".join(lines)


def build_weekly_digest_body(
    first_name: str,
    alerts: Sequence[AlertEmailItem],
    budget_names: Sequence[str],
    app_url: str,
) -> str:
    """Body of the weekly budget summary email."""
    lines = [
        _greeting(first_name),
        "",
        f"Here is your weekly summary for: {', '.join(budget_names)}.",
        "",
        f"{len(alerts)} alert(s) this period:",
        "",
        *_alert_lines(alerts),
        "",
        f"View your budgets: {app_url.rstrip('/')}/budgets",
    ]
    return "\n".join(lines)
