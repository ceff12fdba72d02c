"""
Mail transport: delivers rendered emails.

The production transport posts to the Resend HTTP API. Transports report
failure by returning False; they never raise for a delivery problem.
"""

import logging
from abc import ABC, abstractmethod

import httpx

from ..core.config import Settings, get_settings


logger = logging.getLogger(__name__)


class MailTransport(ABC):
    """Abstract base for email delivery."""

    @abstractmethod
    async def send(self, to: str, subject: str, html: str) -> bool:
        """Send one email. Returns True only if the provider accepted it."""
        pass


class ResendTransport(MailTransport):
    """Sends email through the Resend API."""

    def __init__(
        self,
        settings: Settings,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = settings.resend_api_key
        self._api_url = settings.resend_api_url
        self._from = settings.mail_from
        self._timeout = settings.mail_timeout_seconds
        self._http_transport = http_transport

    async def send(self, to: str, subject: str, html: str) -> bool:
        if not self._api_key:
            logger.warning(f"RESEND_API_KEY not set, not sending '{subject}' to {to}")
            return False

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._http_transport
            ) as client:
                response = await client.post(
                    self._api_url,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": self._from,
                        "to": [to],
                        "subject": subject,
                        "html": html,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Email to {to} failed: {e}")
            return False

        if response.status_code >= 400:
            logger.error(
                f"Email to {to} rejected: {response.status_code} {response.text[:200]}"
            )
            return False

        logger.info(f"[EMAIL] To: {to}, Subject: {subject}")
        return True


def get_mail_transport() -> MailTransport:
    """FastAPI dependency returning the configured transport."""
    return ResendTransport(get_settings())
