"""
Transactional email client

Sends HTML email through a Resend-compatible HTTP API
(POST {EMAIL_API_URL} with a bearer key).
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

import httpx

from .config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """The email API rejected the message or could not be reached"""


@dataclass
class EmailMessage:
    to: Union[str, List[str]]
    subject: str
    html: str


class EmailClient:
    """Async client for the email delivery API"""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        sender: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, message: EmailMessage) -> str:
        """Send one message and return the provider message id

        Raises:
            EmailDeliveryError: on a missing key, a transport error or a non-2xx response
        """
        if not self.configured:
            raise EmailDeliveryError("EMAIL_API_KEY is not configured")

        recipients = [message.to] if isinstance(message.to, str) else list(message.to)
        payload = {"from": self.sender, "to": recipients, "subject": message.subject, "html": message.html}
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.api_url, json=payload, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Email API returned {e.response.status_code} for '{message.subject}'")
            raise EmailDeliveryError(f"Email API returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Email API request failed for '{message.subject}': {e}")
            raise EmailDeliveryError(str(e)) from e

        try:
            message_id = resp.json().get("id", "")
        except ValueError:
            message_id = ""
        logger.info(f"Email sent: subject='{message.subject}' recipients={len(recipients)}")
        return message_id

    async def send_email(self, to: Union[str, List[str]], subject: str, html: str) -> str:
        return await self.send(EmailMessage(to=to, subject=subject, html=html))


_email_client: Optional[EmailClient] = None


def get_email_client() -> EmailClient:
    """FastAPI dependency returning the shared client built from settings"""
    global _email_client
    if _email_client is None:
        _email_client = EmailClient(
            api_url=settings.EMAIL_API_URL,
            api_key=settings.EMAIL_API_KEY,
            sender=settings.EMAIL_FROM,
            timeout=settings.EMAIL_TIMEOUT,
        )
    return _email_client
