"""
Activity Aggregator: merges a user's activity into calendar days.

A day counts as active if the user created a decision, checked in, or
completed an outcome on it. Timestamps are bucketed into days in the single
reference timezone, not the user's own timezone.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime, timezone
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import CheckIn, Decision, Outcome, as_utc


def local_date(value: datetime, tz: ZoneInfo) -> date:
    """Calendar day of a timestamp in the reference timezone."""
    return as_utc(value).astimezone(tz).date()


def today_in(tz: ZoneInfo, now: datetime | None = None) -> date:
    """Today's date in the reference timezone."""
    return local_date(now or datetime.now(timezone.utc), tz)


class ActivityAggregator:
    """Read-only view of user activity as sets of ISO date strings."""

    def __init__(self, session: AsyncSession, tz: ZoneInfo):
        self._session = session
        self._tz = tz

    async def collect_activity_dates(self, user_id: UUID) -> set[str]:
        """Return every day on which ``user_id`` did something."""
        activity = await self.collect_for_users([user_id])
        return activity.get(user_id, set())

    async def collect_for_users(
        self,
        user_ids: Iterable[UUID],
    ) -> dict[UUID, set[str]]:
        """
        Batched variant: activity days for many users in three queries.

        Users without any activity are absent from the result.
        """
        user_ids = list(set(user_ids))
        activity: dict[UUID, set[str]] = defaultdict(set)
        if not user_ids:
            return {}

        decision_rows = await self._session.execute(
            select(Decision.user_id, Decision.created_at)
            .where(Decision.user_id.in_(user_ids))
        )
        for user_id, created_at in decision_rows.all():
            activity[user_id].add(local_date(created_at, self._tz).isoformat())

        checkin_rows = await self._session.execute(
            select(CheckIn.user_id, CheckIn.date)
            .where(CheckIn.user_id.in_(user_ids))
        )
        for user_id, checkin_date in checkin_rows.all():
            activity[user_id].add(checkin_date.isoformat())

        outcome_rows = await self._session.execute(
            select(Decision.user_id, Outcome.completed_at)
            .select_from(Outcome)
            .join(Decision, Outcome.decision_id == Decision.id)
            .where(Decision.user_id.in_(user_ids))
        )
        for user_id, completed_at in outcome_rows.all():
            activity[user_id].add(local_date(completed_at, self._tz).isoformat())

        return dict(activity)

    async def users_active_on(self, day: date) -> set[UUID]:
        """Users with any activity on ``day`` (reference timezone)."""
        start, end = day_bounds(day, self._tz)

        users: set[UUID] = set()

        decision_rows = await self._session.execute(
            select(Decision.user_id).distinct().where(
                Decision.created_at >= start,
                Decision.created_at < end,
            )
        )
        users.update(decision_rows.scalars().all())

        checkin_rows = await self._session.execute(
            select(CheckIn.user_id).distinct().where(CheckIn.date == day)
        )
        users.update(checkin_rows.scalars().all())

        outcome_rows = await self._session.execute(
            select(Decision.user_id).distinct()
            .join(Outcome, Outcome.decision_id == Decision.id)
            .where(
                Outcome.completed_at >= start,
                Outcome.completed_at < end,
            )
        )
        users.update(outcome_rows.scalars().all())

        return users


def day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day in the reference timezone."""
    start = datetime(day.year, day.month, day.day, tzinfo=tz)
    next_day = date.fromordinal(day.toordinal() + 1)
    end = datetime(next_day.year, next_day.month, next_day.day, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
