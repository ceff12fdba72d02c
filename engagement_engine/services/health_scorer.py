"""
Decision Health Scorer.

Combines four signals into a single 0-100 score:

    health = 0.35 * win_rate
           + 0.25 * (100 - min(calibration_gap, 100))
           + 0.25 * completion_rate
           + 0.15 * streak_score

win_rate, completion_rate and streak_score are percentages. The score rises
with win rate, completion and streak and falls with the calibration gap; the
same inputs always give the same score.

The scorer persists one snapshot per user per calendar day. Running it again
on the same day overwrites that day's snapshot.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Literal
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import DEFAULT_ENGAGEMENT_CONFIG, EngagementConfig
from ..core.database import dialect_insert
from ..models import Decision, HealthSnapshot, Outcome, OutcomeResult, Profile
from .activity import ActivityAggregator, today_in
from .streak import calculate_streak


logger = logging.getLogger(__name__)

WIN_RATE_WEIGHT = 0.35
CALIBRATION_WEIGHT = 0.25
COMPLETION_WEIGHT = 0.25
STREAK_WEIGHT = 0.15

# Minimum score change between snapshots that counts as a trend
TREND_THRESHOLD = 2


class UserNotFoundError(Exception):
    """Raised when a user has no profile."""
    pass


@dataclass(frozen=True)
class DecisionHealth:
    """Health score and its component metrics."""
    health_score: int
    win_rate: float
    avg_calibration_gap: float
    completion_rate: float
    streak_length: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class HealthTrend:
    direction: Literal["up", "down", "stable"]
    change: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def compute_decision_health(
    decisions: Sequence[Decision],
    outcomes: Sequence[Outcome],
    streak_length: int,
    streak_full_score_days: int = DEFAULT_ENGAGEMENT_CONFIG.streak_full_score_days,
) -> DecisionHealth:
    """Pure scoring function over a user's decisions and outcomes."""
    outcomes_by_decision = {o.decision_id: o for o in outcomes}

    # 1. Win rate over decisions that have an outcome
    total_outcomes = len(outcomes)
    wins = sum(1 for o in outcomes if o.result == OutcomeResult.WIN)
    win_rate = (wins / total_outcomes) * 100 if total_outcomes else 0.0

    # 2. Calibration gap: confidence when deciding vs confidence afterwards
    gaps = []
    for decision in decisions:
        outcome = outcomes_by_decision.get(decision.id)
        if (
            outcome is not None
            and decision.confidence_int is not None
            and outcome.confidence_after is not None
        ):
            gaps.append(abs(decision.confidence_int - outcome.confidence_after))
    avg_calibration_gap = sum(gaps) / len(gaps) if gaps else 0.0

    # 3. Completion rate over decided decisions
    decided = [d for d in decisions if d.decided_at is not None]
    completed = sum(1 for d in decided if d.id in outcomes_by_decision)
    completion_rate = (completed / len(decided)) * 100 if decided else 0.0

    # 4. Streak, saturating at streak_full_score_days
    streak_score = min(streak_length / streak_full_score_days, 1.0) * 100

    raw_score = (
        WIN_RATE_WEIGHT * win_rate
        + CALIBRATION_WEIGHT * (100 - min(avg_calibration_gap, 100))
        + COMPLETION_WEIGHT * completion_rate
        + STREAK_WEIGHT * streak_score
    )

    return DecisionHealth(
        health_score=int(_clamp(_round_half_up(raw_score), 0, 100)),
        win_rate=round(win_rate, 2),
        avg_calibration_gap=round(avg_calibration_gap, 2),
        completion_rate=round(completion_rate, 2),
        streak_length=streak_length,
    )


def health_trend(current: int, previous: int | None) -> HealthTrend:
    """Compare two health scores; small moves count as stable."""
    if previous is None:
        return HealthTrend(direction="stable", change=0)

    change = current - previous
    if change > TREND_THRESHOLD:
        return HealthTrend(direction="up", change=change)
    if change < -TREND_THRESHOLD:
        return HealthTrend(direction="down", change=change)
    return HealthTrend(direction="stable", change=0)


class HealthScorer:
    """Recalculates and persists decision health snapshots."""

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

    async def calculate(
        self,
        user_id: UUID,
        now: datetime | None = None,
    ) -> DecisionHealth:
        """Compute the current health for a user without persisting it."""
        today = today_in(self._tz, now)

        decisions_result = await self._session.execute(
            select(Decision).where(Decision.user_id == user_id)
        )
        decisions = decisions_result.scalars().all()

        outcomes_result = await self._session.execute(
            select(Outcome)
            .join(Decision, Outcome.decision_id == Decision.id)
            .where(Decision.user_id == user_id)
        )
        outcomes = outcomes_result.scalars().all()

        activity_dates = await self._activity.collect_activity_dates(user_id)
        streak = calculate_streak(activity_dates, today)

        return compute_decision_health(
            decisions,
            outcomes,
            streak,
            streak_full_score_days=self._config.streak_full_score_days,
        )

    async def recalculate(
        self,
        user_id: UUID,
        now: datetime | None = None,
    ) -> HealthSnapshot:
        """
        Compute health and upsert today's snapshot for ``user_id``.

        Raises:
            UserNotFoundError: if the user has no profile
        """
        profile = await self._session.get(Profile, user_id)
        if profile is None:
            raise UserNotFoundError(f"User {user_id} not found")

        now = now or datetime.now(timezone.utc)
        today = today_in(self._tz, now)
        health = await self.calculate(user_id, now=now)

        insert = dialect_insert(self._session)
        values = {"user_id": user_id, "snapshot_date": today, **health.to_dict()}
        stmt = insert(HealthSnapshot).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[HealthSnapshot.user_id, HealthSnapshot.snapshot_date],
            set_={
                **health.to_dict(),
                "updated_at": now,
            },
        )
        await self._session.execute(stmt)

        snapshot = await self.get_snapshot(user_id, today)
        logger.info(
            f"Health snapshot for user {user_id} on {today}: "
            f"score={health.health_score}, streak={health.streak_length}"
        )
        return snapshot

    async def get_snapshot(self, user_id: UUID, snapshot_date: date) -> HealthSnapshot | None:
        result = await self._session.execute(
            select(HealthSnapshot)
            .where(
                HealthSnapshot.user_id == user_id,
                HealthSnapshot.snapshot_date == snapshot_date,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def latest_snapshots(
        self,
        user_ids: Sequence[UUID],
        on_or_before: date,
    ) -> dict[UUID, HealthSnapshot]:
        """Most recent snapshot per user on or before a date (bulk)."""
        if not user_ids:
            return {}

        result = await self._session.execute(
            select(HealthSnapshot)
            .where(
                HealthSnapshot.user_id.in_(list(user_ids)),
                HealthSnapshot.snapshot_date <= on_or_before,
            )
            .order_by(HealthSnapshot.snapshot_date.asc())
        )
        latest: dict[UUID, HealthSnapshot] = {}
        for snapshot in result.scalars().all():
            latest[snapshot.user_id] = snapshot
        return latest

    async def weekly_summaries(
        self,
        user_ids: Sequence[UUID],
        now: datetime | None = None,
    ) -> dict[UUID, tuple[HealthSnapshot, HealthTrend]]:
        """Latest snapshot per user with its trend against a week earlier."""
        today = today_in(self._tz, now)
        current = await self.latest_snapshots(user_ids, today)
        previous = await self.latest_snapshots(
            list(current.keys()), today - timedelta(days=7)
        )

        summaries = {}
        for user_id, snapshot in current.items():
            before = previous.get(user_id)
            trend = health_trend(
                snapshot.health_score,
                before.health_score if before else None,
            )
            summaries[user_id] = (snapshot, trend)
        return summaries
