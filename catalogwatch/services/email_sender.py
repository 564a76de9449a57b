"""
Email delivery for scheduled-audit notifications.

Providers:
- SendGrid (production), over its v3 HTTP API
- Mock (tests and local runs)

Senders never raise on delivery problems; they log and return False.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
DEFAULT_FROM_EMAIL = "alerts@catalogwatch.app"
DEFAULT_FROM_NAME = "CatalogWatch"


@dataclass
class EmailMessage:
    to_email: str
    subject: str
    html_body: str
    text_body: Optional[str] = None
    tags: Optional[List[str]] = None


class EmailSender(ABC):
    """Delivers a single email."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> bool:
        """Return True when the provider accepted the message."""


class SendGridEmailSender(EmailSender):

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key or os.getenv("SENDGRID_API_KEY")
        self.from_email = from_email or os.getenv("NOTIFICATION_FROM_EMAIL", DEFAULT_FROM_EMAIL)
        self.from_name = from_name or os.getenv("NOTIFICATION_FROM_NAME", DEFAULT_FROM_NAME)
        self.timeout = timeout

        if not self.api_key:
            logger.warning("SendGrid API key not configured")

    def build_payload(self, message: EmailMessage) -> dict:
        content = [{"type": "text/html", "value": message.html_body}]
        if message.text_body:
            content.insert(0, {"type": "text/plain", "value": message.text_body})

        payload = {
            "personalizations": [{"to": [{"email": message.to_email}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": message.subject,
            "content": content,
        }
        if message.tags:
            payload["categories"] = message.tags
        return payload

    async def send(self, message: EmailMessage) -> bool:
        if not self.api_key:
            logger.error("Cannot send email: SendGrid API key not configured")
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    SENDGRID_SEND_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=self.build_payload(message),
                )
        except httpx.HTTPError as e:
            logger.error(
                "Failed to send email via SendGrid",
                extra={"to_email": message.to_email, "error": str(e)},
            )
            return False

        if response.status_code in (200, 202):
            logger.info(
                "Email sent",
                extra={"to_email": message.to_email, "subject": message.subject},
            )
            return True

        logger.error(
            "SendGrid API error",
            extra={
                "status_code": response.status_code,
                "response": response.text,
                "to_email": message.to_email,
            },
        )
        return False


class MockEmailSender(EmailSender):
    """Records messages instead of sending them."""

    def __init__(self):
        self.sent_messages: List[EmailMessage] = []

    async def send(self, message: EmailMessage) -> bool:
        self.sent_messages.append(message)
        logger.info(
            "Mock email sent",
            extra={"to_email": message.to_email, "subject": message.subject},
        )
        return True

    def clear(self) -> None:
        self.sent_messages.clear()


def get_email_sender() -> EmailSender:
    """Sender selected by NOTIFICATION_EMAIL_PROVIDER (sendgrid | mock)."""
    provider = os.getenv("NOTIFICATION_EMAIL_PROVIDER", "sendgrid").lower()
    if provider == "mock":
        return MockEmailSender()
    return SendGridEmailSender()
