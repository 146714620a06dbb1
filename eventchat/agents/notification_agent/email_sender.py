import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, Optional

from pydantic import BaseModel

from eventchat.utils.config import EMAIL_HOST, EMAIL_PORT, EMAIL_USERNAME, EMAIL_PASSWORD, EMAIL_FROM

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 20

TEMPLATES = {
    "registration": (
        "You're registered: {title}",
        "Hi {name},\n\nYou are registered for {title}.\n{when}{where}\n"
        "Registration id: {registration_id}\n{calendar_link}\n\nSee you there!",
    ),
    "event_saved": (
        "Saved: {title}",
        "Hi {name},\n\n{title} was saved to your events.\n{when}{where}\n{link}",
    ),
    "remind_later": (
        "We'll remind you about {title}",
        "Hi {name},\n\nWe will remind you about {title} in 24 hours.\n{link}",
    ),
    "reminder": (
        "Reminder: {title}",
        "Hi {name},\n\nThis is your reminder for {title}.\n{when}{where}\n{link}",
    ),
}


class SendResult(BaseModel):
    success: bool
    error: Optional[str] = None


class _Defaults(dict):
    def __missing__(self, key):
        return ""


def render(template: str, data: Dict[str, Any]) -> tuple[str, str]:
    subject, body = TEMPLATES[template]
    values = _Defaults({k: v for k, v in data.items() if v is not None})
    if values.get("when"):
        values["when"] = f"When: {values['when']}\n"
    if values.get("where"):
        values["where"] = f"Where: {values['where']}\n"
    return subject.format_map(values), body.format_map(values)


class EmailSender:
    """Fire-and-forget email: ``send`` never raises, it reports success or the error text."""

    def __init__(self, host: Optional[str] = EMAIL_HOST, port: int = EMAIL_PORT,
                 username: Optional[str] = EMAIL_USERNAME, password: Optional[str] = EMAIL_PASSWORD,
                 sender: Optional[str] = EMAIL_FROM):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username

    @property
    def configured(self) -> bool:
        return bool(self.host and self.sender)

    async def send(self, recipient: str, template: str, data: Dict[str, Any]) -> SendResult:
        if template not in TEMPLATES:
            return SendResult(success=False, error=f"unknown template '{template}'")
        if not recipient:
            return SendResult(success=False, error="no recipient")
        if not self.configured:
            logger.info("Email not configured; skipping '%s' to %s", template, recipient)
            return SendResult(success=False, error="email not configured")
        subject, body = render(template, data)
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Sending '%s' to %s failed: %s", template, recipient, exc)
            return SendResult(success=False, error=str(exc))
        logger.info("Sent '%s' email to %s", template, recipient)
        return SendResult(success=True)

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(message)
