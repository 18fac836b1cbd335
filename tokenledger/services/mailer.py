"""SMTP delivery for notification and feedback mail."""

from email.mime.text import MIMEText
from email.utils import formataddr

import aiosmtplib

from tokenledger.core.config import Settings, get_settings
from tokenledger.core.logging import get_logger

log = get_logger(__name__)

SENDER_NAME = "Token of Thanks"
SMTPS_PORT = 465


def mail_configured(s: Settings) -> bool:
    return bool(s.email_host and s.email_user and s.email_pass)


def build_message(s: Settings, to: str, subject: str, body: str) -> MIMEText:
    message = MIMEText(body, "plain", "utf-8")
    message["From"] = formataddr((SENDER_NAME, s.email_from or s.email_user or ""))
    message["To"] = to
    message["Subject"] = subject
    return message


async def send_email(to: str, subject: str, body: str, settings: Settings | None = None) -> bool:
    """
    Send one plain-text mail. Returns False without contacting a server when
    SMTP is not configured; SMTP failures propagate as ``aiosmtplib.SMTPException``.
    """
    s = settings or get_settings()
    if not mail_configured(s):
        log.info("email_skipped", to=to, subject=subject, reason="not_configured")
        return False
    message = build_message(s, to, subject, body)
    # Port 465 speaks TLS from the first byte; other ports upgrade with STARTTLS when offered.
    implicit_tls = s.email_port == SMTPS_PORT
    await aiosmtplib.send(
        message,
        hostname=s.email_host,
        port=s.email_port,
        username=s.email_user,
        password=s.email_pass,
        use_tls=implicit_tls,
        start_tls=False if implicit_tls else None,
        timeout=s.email_timeout_seconds,
    )
    log.info("email_sent", to=to, subject=subject)
    return True
