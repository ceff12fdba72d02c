"""
Notification job runner: one batch run of one notification category.

    Eligibility Filter -> bulk prefetch (profiles, recent sends)
        -> per candidate: Preference Gate -> Idempotency Guard -> Dispatcher

A failure to load candidates aborts the run. Any failure for a single
candidate is counted as skipped and the run moves on.
"""

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import DEFAULT_ENGAGEMENT_CONFIG, EngagementConfig, Settings
from ..models import EmailType, Profile
from .dispatcher import Dispatcher, DispatchOutcome, Recipient
from .eligibility import Candidate, CandidateFetchError, EligibilityFilter
from .mail import MailTransport
from .preferences import is_email_enabled
from .send_log import SendLogGuard


logger = logging.getLogger(__name__)

JOB_LABELS = {
    EmailType.OUTCOME_DUE: "outcome due",
    EmailType.OUTCOME_OVERDUE: "outcome overdue",
    EmailType.STREAK_SAVE: "streak save",
    EmailType.WEEKLY_REVIEW: "weekly review",
}


@dataclass
class JobResult:
    """Summary counters of one run. sent + skipped == total."""
    message: str
    total: int
    sent: int
    skipped: int

    def to_dict(self) -> dict:
        return asdict(self)


def skip_reason(
    candidate: Candidate,
    recipient: Recipient | None,
    already_sent: set | None = None,
) -> str | None:
    """Why a candidate is not sent, or None if it should be dispatched."""
    if recipient is None:
        return "no profile"
    if not recipient.email:
        return "no email address"
    if not is_email_enabled(recipient.email_preferences, candidate.email_type):
        return "disabled in preferences"
    if already_sent and candidate.key in already_sent:
        return "already sent in window"
    return None


async def load_profiles(
    session: AsyncSession,
    user_ids: Iterable[UUID],
) -> dict[UUID, Recipient]:
    user_ids = list(set(user_ids))
    if not user_ids:
        return {}
    result = await session.execute(select(Profile).where(Profile.id.in_(user_ids)))
    return {
        profile.id: Recipient.from_profile(profile)
        for profile in result.scalars().all()
    }


def build_dispatcher(
    session: AsyncSession,
    transport: MailTransport,
    settings: Settings,
    config: EngagementConfig = DEFAULT_ENGAGEMENT_CONFIG,
) -> tuple[SendLogGuard, Dispatcher]:
    guard = SendLogGuard(
        session,
        config,
        claim_timeout=timedelta(seconds=settings.send_claim_timeout_seconds),
    )
    return guard, Dispatcher(session, transport, guard, settings.app_url)


class NotificationJobRunner:
    """Runs one scheduled notification category end to end."""

    def __init__(
        self,
        session: AsyncSession,
        transport: MailTransport,
        settings: Settings,
        config: EngagementConfig = DEFAULT_ENGAGEMENT_CONFIG,
    ):
        self._session = session
        self._filter = EligibilityFilter(session, settings.reference_tz, config)
        self._guard, self._dispatcher = build_dispatcher(
            session, transport, settings, config
        )

    async def run(
        self,
        email_type: EmailType,
        now: datetime | None = None,
    ) -> JobResult:
        """
        Send ``email_type`` to every eligible candidate.

        Raises:
            CandidateFetchError: if candidates or their profiles cannot be loaded
        """
        now = now or datetime.now(timezone.utc)
        label = JOB_LABELS.get(email_type, email_type.value)

        candidates = await self._filter.find_candidates(email_type, now)
        if not candidates:
            return JobResult(
                message=f"No {label} candidates", total=0, sent=0, skipped=0
            )

        try:
            profiles = await load_profiles(
                self._session, (c.user_id for c in candidates)
            )
            already_sent = await self._guard.recently_sent(candidates, now)
        except SQLAlchemyError as e:
            logger.error(f"Failed to prefetch {label} recipients: {e}")
            raise CandidateFetchError(f"Failed to prefetch {label} recipients") from e

        sent = 0
        skipped = 0
        for candidate in candidates:
            reason = skip_reason(
                candidate, profiles.get(candidate.user_id), already_sent
            )
            if reason is not None:
                logger.info(
                    f"Skipping {email_type.value} for user {candidate.user_id}: {reason}"
                )
                skipped += 1
                continue

            try:
                outcome = await self._dispatcher.dispatch(
                    candidate, profiles[candidate.user_id], now
                )
            except SQLAlchemyError as e:
                await self._session.rollback()
                logger.error(
                    f"Send log write failed for user {candidate.user_id}: {e}"
                )
                skipped += 1
                continue

            if outcome == DispatchOutcome.SENT:
                sent += 1
            else:
                skipped += 1

        logger.info(
            f"{label} job done: total={len(candidates)}, sent={sent}, skipped={skipped}"
        )
        return JobResult(
            message=f"Sent {sent} {label} emails",
            total=len(candidates),
            sent=sent,
            skipped=skipped,
        )
