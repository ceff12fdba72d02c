"""
Dispatcher: claim, send, record.

A candidate is sent at most once per dedup window under normal operation:

1. Render the email for the candidate's category
2. Atomically claim the send-log row and commit the claim
3. Hand the email to the mail transport
4. Mark the claim sent, or failed so the next run can retry it
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Profile
from .eligibility import Candidate
from .email_templates import EmailTemplateData, render_email
from .mail import MailTransport
from .send_log import SendLogGuard


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    """Detached copy of the profile fields needed to send."""
    user_id: UUID
    email: str | None
    display_name: str | None
    email_preferences: dict[str, Any] | None
    is_pro: bool

    @classmethod
    def from_profile(cls, profile: Profile) -> "Recipient":
        return cls(
            user_id=profile.id,
            email=profile.email,
            display_name=profile.display_name,
            email_preferences=profile.email_preferences,
            is_pro=profile.is_pro,
        )


class DispatchOutcome(str, Enum):
    SENT = "sent"
    DUPLICATE = "duplicate"  # Another run owns or already completed this send
    FAILED = "failed"  # Transport refused; claim released for retry


class Dispatcher:
    """Sends one candidate's email through the idempotency guard."""

    def __init__(
        self,
        session: AsyncSession,
        transport: MailTransport,
        guard: SendLogGuard,
        app_url: str,
    ):
        self._session = session
        self._transport = transport
        self._guard = guard
        self._app_url = app_url.rstrip("/")

    async def dispatch(
        self,
        candidate: Candidate,
        recipient: Recipient,
        now: datetime | None = None,
    ) -> DispatchOutcome:
        """
        Deliver ``candidate``'s email to ``recipient.email``.

        The claim is committed before the transport is called so that an
        overlapping run of the same job sees it.
        """
        now = now or datetime.now(timezone.utc)

        subject, html = render_email(
            candidate.email_type,
            EmailTemplateData(
                app_url=self._app_url,
                display_name=recipient.display_name,
                context=candidate.context,
            ),
        )

        claim = await self._guard.claim(candidate, now)
        await self._session.commit()
        if claim is None:
            return DispatchOutcome.DUPLICATE

        try:
            delivered = await self._transport.send(recipient.email, subject, html)
            error = None if delivered else "Mail transport refused the message"
        except Exception as e:
            logger.exception(
                f"Transport error sending {candidate.email_type.value} "
                f"to user {candidate.user_id}"
            )
            delivered = False
            error = f"{type(e).__name__}: {e}"

        if delivered:
            await self._guard.mark_sent(claim, now)
            await self._session.commit()
            logger.info(
                f"Sent {candidate.email_type.value} to user {candidate.user_id}"
            )
            return DispatchOutcome.SENT

        await self._guard.mark_failed(claim, error)
        await self._session.commit()
        logger.warning(
            f"Failed to send {candidate.email_type.value} to user "
            f"{candidate.user_id}: {error}"
        )
        return DispatchOutcome.FAILED
