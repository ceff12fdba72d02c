"""
Streak Calculator: consecutive-day activity streaks.

Pure functions over a set of activity days. No I/O, no clock access; callers
pass "today" in the reference timezone.
"""

from collections.abc import Iterable
from datetime import date, timedelta

ONE_DAY = timedelta(days=1)


def _as_dates(activity_dates: Iterable[str | date]) -> set[date]:
    return {
        d if isinstance(d, date) else date.fromisoformat(d)
        for d in activity_dates
    }


def calculate_streak(activity_dates: Iterable[str | date], today: date) -> int:
    """
    Count consecutive active days ending at ``today``.

    Dates are walked newest first. An exact match extends the streak and moves
    the expected day back by one; the first date older than the expected day
    ends the walk. Dates newer than the expected day are ignored.
    """
    streak = 0
    expected = today

    for activity_date in sorted(_as_dates(activity_dates), reverse=True):
        if activity_date == expected:
            streak += 1
            expected -= ONE_DAY
        elif activity_date < expected:
            break

    return streak


def live_streak(activity_dates: Iterable[str | date], today: date) -> int:
    """
    Streak that is still alive today.

    This is the run ending today, or the run ending yesterday when there is no
    activity yet today; it only breaks once a full day passes without activity.
    """
    dates = _as_dates(activity_dates)
    return calculate_streak(dates, today) or calculate_streak(dates, today - ONE_DAY)


def last_activity_date(
    activity_dates: Iterable[str | date],
    today: date,
) -> date | None:
    """Most recent activity day on or before ``today``."""
    past = [d for d in _as_dates(activity_dates) if d <= today]
    return max(past) if past else None


def hours_since_last_activity(
    activity_dates: Iterable[str | date],
    today: date,
) -> float | None:
    """Hours from the start of the last activity day to the start of today."""
    last = last_activity_date(activity_dates, today)
    if last is None:
        return None
    return (today - last).total_seconds() / 3600
