"""Tests for the Activity Aggregator."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from engagement_engine.services.activity import (
    ActivityAggregator,
    day_bounds,
    local_date,
)

from conftest import NOW


UTC = ZoneInfo("UTC")


class TestLocalDate:

    def test_utc(self):
        value = datetime(2026, 3, 11, 2, 0, tzinfo=timezone.utc)
        assert local_date(value, UTC) == date(2026, 3, 11)

    def test_reference_timezone_shifts_the_day(self):
        value = datetime(2026, 3, 11, 2, 0, tzinfo=timezone.utc)
        assert local_date(value, ZoneInfo("America/New_York")) == date(2026, 3, 10)

    def test_naive_values_are_treated_as_utc(self):
        value = datetime(2026, 3, 11, 23, 30)
        assert local_date(value, UTC) == date(2026, 3, 11)

    def test_day_bounds(self):
        start, end = day_bounds(date(2026, 3, 11), UTC)
        assert start == datetime(2026, 3, 11, tzinfo=timezone.utc)
        assert end - start == timedelta(days=1)


class TestActivityAggregator:

    async def test_merges_all_activity_sources(self, session, seed):
        profile = await seed.profile()
        decision = await seed.decision(
            profile.id,
            created_at=NOW - timedelta(days=3),
            decided_at=NOW - timedelta(days=3),
        )
        await seed.outcome(decision, completed_at=NOW - timedelta(days=1))
        await seed.checkin(profile.id, date(2026, 3, 9))

        dates = await ActivityAggregator(session, UTC).collect_activity_dates(profile.id)

        assert dates == {"2026-03-08", "2026-03-09", "2026-03-10"}

    async def test_same_day_from_several_sources_counts_once(self, session, seed):
        profile = await seed.profile()
        await seed.decision(profile.id, created_at=NOW)
        await seed.checkin(profile.id, NOW.date())

        dates = await ActivityAggregator(session, UTC).collect_activity_dates(profile.id)

        assert dates == {"2026-03-11"}

    async def test_user_without_activity(self, session, seed):
        profile = await seed.profile()

        dates = await ActivityAggregator(session, UTC).collect_activity_dates(profile.id)

        assert dates == set()

    async def test_batched_collection_keeps_users_apart(self, session, seed):
        alice = await seed.profile(email="alice@example.com")
        bob = await seed.profile(email="bob@example.com")
        await seed.checkin(alice.id, date(2026, 3, 10))
        await seed.checkin(bob.id, date(2026, 3, 11))

        activity = await ActivityAggregator(session, UTC).collect_for_users(
            [alice.id, bob.id]
        )

        assert activity == {alice.id: {"2026-03-10"}, bob.id: {"2026-03-11"}}

    async def test_users_active_on(self, session, seed):
        by_decision = await seed.profile()
        by_checkin = await seed.profile()
        by_outcome = await seed.profile()
        inactive = await seed.profile()

        await seed.decision(by_decision.id, created_at=datetime(2026, 3, 10, 8, tzinfo=timezone.utc))
        await seed.checkin(by_checkin.id, date(2026, 3, 10))
        old = await seed.decision(
            by_outcome.id,
            created_at=NOW - timedelta(days=20),
            decided_at=NOW - timedelta(days=20),
        )
        await seed.outcome(old, completed_at=datetime(2026, 3, 10, 23, 59, tzinfo=timezone.utc))
        await seed.checkin(inactive.id, date(2026, 3, 9))

        users = await ActivityAggregator(session, UTC).users_active_on(date(2026, 3, 10))

        assert users == {by_decision.id, by_checkin.id, by_outcome.id}
