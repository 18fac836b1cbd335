"""User feedback, mailed to the operators' inbox."""

import re

import aiosmtplib

from tokenledger.core.config import get_settings
from tokenledger.core.exceptions import MailDeliveryError, MailNotConfiguredError, ValidationError
from tokenledger.core.logging import get_logger
from tokenledger.services import mailer
from tokenledger.services.accounts import normalize_email

log = get_logger(__name__)

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MESSAGE_MIN_LENGTH = 10
MESSAGE_MAX_LENGTH = 2000
NAME_MAX_LENGTH = 100
SUBJECT = "Token of Thanks - New User Feedback"


def render_feedback_email(message: str, email: str | None, name: str | None) -> str:
    return (
        "New Feedback Submitted\n\n"
        f"Name: {name or 'Anonymous'}\n"
        f"Email: {email or 'not provided'}\n\n"
        f"Message:\n{message}\n"
    )


async def submit_feedback(message: str, email: str | None = None, name: str | None = None) -> bool:
    """
    Validate and mail one feedback entry. Returns whether a mail went out;
    an unconfigured SMTP transport is not an error, a missing recipient is.
    """
    text = (message or "").strip()
    if not MESSAGE_MIN_LENGTH <= len(text) <= MESSAGE_MAX_LENGTH:
        raise ValidationError("Message must be between 10 and 2000 characters", field="message")
    address = normalize_email(email) or None
    if address and not EMAIL_RE.match(address):
        raise ValidationError("Please provide a valid email address", field="email")
    display = (name or "").strip() or None
    if display and len(display) > NAME_MAX_LENGTH:
        raise ValidationError("Name cannot exceed 100 characters", field="name")

    s = get_settings()
    to = s.feedback_to or s.email_user
    if not to:
        raise MailNotConfiguredError()
    try:
        sent = await mailer.send_email(to, SUBJECT, render_feedback_email(text, address, display), settings=s)
    except aiosmtplib.SMTPException as e:
        log.warning("feedback_delivery_failed", error=str(e))
        raise MailDeliveryError() from e
    log.info("feedback_submitted", sent=sent, has_email=address is not None)
    return sent
