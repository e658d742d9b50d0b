"""
Outbound email for health check alerts
"""

import html
import json
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

from .settings import EmailSettings

logger = logging.getLogger("shared-logging")

HEALTH_CHECK_SUBJECT = "Logging Module Health Check"


class MessageRejected(Exception):
    """The email provider refused the message"""

    def __init__(self, message: str, recipients: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.recipients = recipients or []


class EmailSender(Protocol):
    def send(self, to: Union[str, List[str]], subject: str, html_body: str,
             text_body: Optional[str] = None) -> None: ...


def normalize_recipients(to: Union[str, Iterable[str], None]) -> List[str]:
    """Accept a comma separated string or a list of addresses"""
    if not to:
        return []
    if isinstance(to, str):
        to = to.split(',')
    return [address.strip() for address in to if address and address.strip()]


class SmtpEmailSender:
    """Send email through an SMTP transactional provider"""

    def __init__(self, settings: EmailSettings, timeout: float = 30.0):
        self.settings = settings
        self.timeout = timeout

    def send(self, to: Union[str, List[str]], subject: str, html_body: str,
             text_body: Optional[str] = None) -> None:
        """
        Send one message

        Args:
            to: Recipient list or comma separated string
            subject: Email subject
            html_body: HTML body
            text_body: Optional plain text alternative

        Raises:
            MessageRejected: The provider refused the sender, recipients or content
        """
        recipients = normalize_recipients(to)
        if not recipients:
            raise ValueError("No email recipients specified")
        if not self.settings.send_from:
            raise ValueError("No sender address configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.settings.send_from
        msg["To"] = ", ".join(recipients)

        if text_body:
            msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=self.timeout) as server:
                server.ehlo()
                if self.settings.use_tls:
                    server.starttls()
                    server.ehlo()
                if self.settings.smtp_username:
                    server.login(self.settings.smtp_username, self.settings.smtp_password or "")
                server.sendmail(self.settings.send_from, recipients, msg.as_string())
        except (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused, smtplib.SMTPDataError) as e:
            raise MessageRejected(str(e), recipients) from e

        logger.info(f"Email sent to {len(recipients)} recipients: {subject}")


def _format_timestamp(value: Any) -> str:
    return value.isoformat() if isinstance(value, datetime) else str(value)


def build_health_check_body(records: Iterable[Dict[str, Any]]) -> str:
    """One list item per record: its timestamp, then every other field except id"""
    items = []
    for record in records:
        clone = dict(record)
        clone.pop('id', None)
        timestamp = clone.pop('timestamp', None)
        # record text is caller controlled
        fields = html.escape(json.dumps(clone, default=str), quote=False)
        items.append(f"<li>{_format_timestamp(timestamp)} - {fields}</li>")
    return ''.join(items)


def send_health_check_email(sender: EmailSender, records: List[Dict[str, Any]],
                            recipients: List[str], environment: str) -> None:
    sender.send(
        recipients,
        f"{HEALTH_CHECK_SUBJECT} - {environment}",
        build_health_check_body(records),
    )
