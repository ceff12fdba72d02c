"""
Event-driven emails: welcome and outcome milestones.

Called by the CRUD layer rather than by a cron. The 1st recorded outcome
triggers ``first_outcome``; the 3rd triggers ``pro_moment`` for users who are
not on Pro yet. Milestone emails go out at most once per user, ever. Every
send goes through the same guard as scheduled jobs.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import DEFAULT_ENGAGEMENT_CONFIG, EngagementConfig, Settings
from ..models import Decision, EmailType, Outcome, Profile
from .dispatcher import DispatchOutcome, Recipient
from .eligibility import Candidate
from .health_scorer import UserNotFoundError
from .mail import MailTransport
from .notification_jobs import build_dispatcher, skip_reason


logger = logging.getLogger(__name__)

ONCE_PER_USER = frozenset({EmailType.FIRST_OUTCOME, EmailType.PRO_MOMENT})


@dataclass
class MilestoneResult:
    """What happened to one event-driven email."""
    email_type: EmailType
    status: str  # DispatchOutcome value, or "skipped"
    reason: str | None = None


class EngagementEmails:
    """Sends welcome and outcome-milestone emails for a single user."""

    def __init__(
        self,
        session: AsyncSession,
        transport: MailTransport,
        settings: Settings,
        config: EngagementConfig = DEFAULT_ENGAGEMENT_CONFIG,
    ):
        self._session = session
        self._config = config
        self._guard, self._dispatcher = build_dispatcher(
            session, transport, settings, config
        )

    async def _recipient(self, user_id: UUID) -> Recipient:
        profile = await self._session.get(Profile, user_id)
        if profile is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return Recipient.from_profile(profile)

    async def _send(
        self,
        recipient: Recipient,
        candidate: Candidate,
        now: datetime,
    ) -> MilestoneResult:
        already_sent = await self._guard.recently_sent([candidate], now)
        reason = skip_reason(candidate, recipient, already_sent)
        if (
            reason is None
            and candidate.email_type in ONCE_PER_USER
            and await self._guard.ever_sent(candidate)
        ):
            reason = "already sent"
        if reason is not None:
            logger.info(
                f"Skipping {candidate.email_type.value} for user "
                f"{candidate.user_id}: {reason}"
            )
            return MilestoneResult(candidate.email_type, "skipped", reason)

        outcome = await self._dispatcher.dispatch(candidate, recipient, now)
        return MilestoneResult(candidate.email_type, outcome.value)

    async def send_welcome(
        self,
        user_id: UUID,
        now: datetime | None = None,
    ) -> MilestoneResult:
        """Send the welcome email, at most once per welcome window."""
        now = now or datetime.now(timezone.utc)
        recipient = await self._recipient(user_id)
        return await self._send(
            recipient,
            Candidate(user_id=user_id, email_type=EmailType.WELCOME),
            now,
        )

    async def count_outcomes(self, user_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count(Outcome.id))
            .join(Decision, Outcome.decision_id == Decision.id)
            .where(Decision.user_id == user_id)
        )
        return result.scalar_one()

    async def on_outcome_recorded(
        self,
        user_id: UUID,
        now: datetime | None = None,
    ) -> list[MilestoneResult]:
        """Send whichever milestone email the user's outcome count has reached."""
        now = now or datetime.now(timezone.utc)
        recipient = await self._recipient(user_id)
        count = await self.count_outcomes(user_id)

        results = []
        if count == self._config.first_outcome_count:
            results.append(await self._send(
                recipient,
                Candidate(
                    user_id=user_id,
                    email_type=EmailType.FIRST_OUTCOME,
                    context={"outcome_count": count},
                ),
                now,
            ))
        elif count == self._config.pro_moment_outcome_count and not recipient.is_pro:
            results.append(await self._send(
                recipient,
                Candidate(
                    user_id=user_id,
                    email_type=EmailType.PRO_MOMENT,
                    context={"outcome_count": count},
                ),
                now,
            ))

        sent = [r for r in results if r.status == DispatchOutcome.SENT.value]
        logger.info(
            f"Outcome milestones for user {user_id}: {count} outcomes, "
            f"{len(sent)} emails sent"
        )
        return results
