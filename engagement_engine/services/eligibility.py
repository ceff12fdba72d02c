"""
Eligibility Filter: which users or decisions qualify for a notification now.

Each notification category has its own predicate:

    outcome_due       decided, no outcome, decided within the last 7 days
    outcome_overdue   decided, no outcome, decided 7-90 days ago
    streak_save       live streak, last active 24-48 hours ago
    weekly_review     created a decision since Sunday 00:00

Decisions decided more than 90 days ago never surface. Any database failure
while fetching candidates raises CandidateFetchError, which aborts the run.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import DEFAULT_ENGAGEMENT_CONFIG, EngagementConfig
from ..models import Decision, EmailType, Outcome, as_utc
from .activity import ActivityAggregator, day_bounds, today_in
from .health_scorer import HealthScorer
from .streak import hours_since_last_activity, live_streak


logger = logging.getLogger(__name__)


class CandidateFetchError(Exception):
    """Raised when candidates for a notification category cannot be loaded."""
    pass


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class Candidate:
    """A (user, category, optional decision) eligible for a notification."""
    user_id: UUID
    email_type: EmailType
    target_id: UUID | None = None
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def target_key(self) -> str:
        return str(self.target_id) if self.target_id else ""

    @property
    def key(self) -> tuple[UUID, EmailType, str]:
        """Identity used for deduplication."""
        return (self.user_id, self.email_type, self.target_key)


def week_start(today: date) -> date:
    """Most recent Sunday on or before ``today``."""
    return today - timedelta(days=(today.weekday() + 1) % 7)


# =============================================================================
# ELIGIBILITY FILTER
# =============================================================================


class EligibilityFilter:
    """Builds the candidate list for one notification category."""

    def __init__(
        self,
        session: AsyncSession,
        tz: ZoneInfo,
        config: EngagementConfig = DEFAULT_ENGAGEMENT_CONFIG,
    ):
        self._session = session
        self._tz = tz
        self._config = config
        self._activity = ActivityAggregator(session, tz)

    async def find_candidates(
        self,
        email_type: EmailType,
        now: datetime | None = None,
    ) -> list[Candidate]:
        """
        Return every candidate for ``email_type`` at ``now``.

        Raises:
            CandidateFetchError: if the candidate queries fail
            ValueError: if the category is not driven by a scheduled job
        """
        now = now or datetime.now(timezone.utc)

        finders = {
            EmailType.OUTCOME_DUE: self.outcome_due,
            EmailType.OUTCOME_OVERDUE: self.outcome_overdue,
            EmailType.STREAK_SAVE: self.streak_save,
            EmailType.WEEKLY_REVIEW: self.weekly_review,
        }
        finder = finders.get(email_type)
        if finder is None:
            raise ValueError(f"{email_type.value} is not a scheduled category")

        try:
            candidates = await finder(now)
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch {email_type.value} candidates: {e}")
            raise CandidateFetchError(
                f"Failed to fetch {email_type.value} candidates"
            ) from e

        logger.info(f"Found {len(candidates)} {email_type.value} candidates")
        return candidates

    # =========================================================================
    # OUTCOME REMINDERS
    # =========================================================================

    async def outcome_due(self, now: datetime) -> list[Candidate]:
        """Decided in the last 7 days and still waiting for an outcome."""
        due_after = now - timedelta(days=self._config.overdue_after_days)
        oldest = now - timedelta(days=self._config.reminder_max_age_days)
        return await self._pending_outcomes(
            EmailType.OUTCOME_DUE,
            now,
            lower=max(due_after, oldest),
            upper=None,
        )

    async def outcome_overdue(self, now: datetime) -> list[Candidate]:
        """Decided 7 to 90 days ago and still waiting for an outcome."""
        overdue_before = now - timedelta(days=self._config.overdue_after_days)
        oldest = now - timedelta(days=self._config.reminder_max_age_days)
        return await self._pending_outcomes(
            EmailType.OUTCOME_OVERDUE,
            now,
            lower=oldest,
            upper=overdue_before,
        )

    async def _pending_outcomes(
        self,
        email_type: EmailType,
        now: datetime,
        lower: datetime,
        upper: datetime | None,
    ) -> list[Candidate]:
        query = (
            select(Decision)
            .outerjoin(Outcome, Outcome.decision_id == Decision.id)
            .where(
                Decision.decided_at.isnot(None),
                Decision.chosen_option_id.isnot(None),
                Outcome.id.is_(None),
                Decision.decided_at >= lower,
            )
            .order_by(Decision.decided_at.asc())
        )
        if upper is not None:
            query = query.where(Decision.decided_at < upper)

        result = await self._session.execute(query)

        candidates = []
        for decision in result.scalars().all():
            days_since = (now - as_utc(decision.decided_at)).days
            candidates.append(Candidate(
                user_id=decision.user_id,
                email_type=email_type,
                target_id=decision.id,
                context={
                    "decision_id": str(decision.id),
                    "decision_title": decision.title,
                    "days_since_decided": days_since,
                },
            ))
        return candidates

    # =========================================================================
    # STREAK SAVE
    # =========================================================================

    async def streak_save(self, now: datetime) -> list[Candidate]:
        """Users whose live streak ends unless they show up today."""
        today = today_in(self._tz, now)
        yesterday = today - timedelta(days=1)

        # Anyone at risk was active yesterday
        user_ids = await self._activity.users_active_on(yesterday)
        activity = await self._activity.collect_for_users(user_ids)

        candidates = []
        for user_id in sorted(activity.keys(), key=str):
            dates = activity[user_id]
            streak = live_streak(dates, today)
            hours = hours_since_last_activity(dates, today)
            if streak <= 0 or hours is None:
                continue
            if not (
                self._config.streak_risk_min_hours
                <= hours
                < self._config.streak_risk_max_hours
            ):
                continue

            candidates.append(Candidate(
                user_id=user_id,
                email_type=EmailType.STREAK_SAVE,
                context={"streak": streak},
            ))
        return candidates

    # =========================================================================
    # WEEKLY REVIEW
    # =========================================================================

    async def weekly_review(self, now: datetime) -> list[Candidate]:
        """Users who created at least one decision this calendar week."""
        today = today_in(self._tz, now)
        since, _ = day_bounds(week_start(today), self._tz)

        result = await self._session.execute(
            select(Decision.user_id, func.count(Decision.id))
            .where(Decision.created_at >= since)
            .group_by(Decision.user_id)
        )
        counts = {user_id: count for user_id, count in result.all()}
        if not counts:
            return []

        scorer = HealthScorer(self._session, self._tz, self._config)
        summaries = await scorer.weekly_summaries(list(counts.keys()), now=now)

        candidates = []
        for user_id in sorted(counts.keys(), key=str):
            context: dict[str, Any] = {"decisions_this_week": counts[user_id]}
            summary = summaries.get(user_id)
            if summary is not None:
                snapshot, trend = summary
                context.update({
                    "health_score": snapshot.health_score,
                    "avg_calibration_gap": snapshot.avg_calibration_gap,
                    "completion_rate": snapshot.completion_rate,
                    "trend": trend.direction,
                    "trend_change": trend.change,
                })
            candidates.append(Candidate(
                user_id=user_id,
                email_type=EmailType.WEEKLY_REVIEW,
                context=context,
            ))
        return candidates
