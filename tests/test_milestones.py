"""Tests for welcome and outcome-milestone emails."""

from datetime import timedelta
from uuid import uuid4

import pytest

from engagement_engine.models import EmailType, OutcomeResult
from engagement_engine.services.health_scorer import UserNotFoundError
from engagement_engine.services.milestones import EngagementEmails

from conftest import NOW, RecordingTransport


@pytest.fixture
def emails(session, transport, settings) -> EngagementEmails:
    return EngagementEmails(session, transport, settings)


async def record_outcomes(seed, user_id, count: int) -> None:
    for i in range(count):
        when = NOW - timedelta(days=10 - i)
        decision = await seed.decision(user_id, when, decided_at=when, title=f"Decision {i}")
        await seed.outcome(decision, completed_at=when + timedelta(hours=1), result=OutcomeResult.WIN)


class TestWelcome:

    async def test_sends_once_per_window(self, emails, seed, transport):
        profile = await seed.profile(email="new@example.com", display_name="Robin")

        first = await emails.send_welcome(profile.id, now=NOW)
        second = await emails.send_welcome(profile.id, now=NOW + timedelta(days=2))

        assert first.status == "sent"
        assert second.status == "skipped"
        assert len(transport.messages) == 1
        assert "Welcome, Robin." in transport.messages[0]["html"]

    async def test_respects_welcome_preference(self, emails, seed, transport):
        profile = await seed.profile(email_preferences={"welcome": False})

        result = await emails.send_welcome(profile.id, now=NOW)

        assert result.status == "skipped"
        assert result.reason == "disabled in preferences"
        assert transport.messages == []

    async def test_unknown_user(self, emails):
        with pytest.raises(UserNotFoundError):
            await emails.send_welcome(uuid4(), now=NOW)


class TestOutcomeMilestones:

    async def test_first_outcome(self, emails, seed, transport):
        profile = await seed.profile()
        await record_outcomes(seed, profile.id, 1)

        results = await emails.on_outcome_recorded(profile.id, now=NOW)

        assert [(r.email_type, r.status) for r in results] == [
            (EmailType.FIRST_OUTCOME, "sent")
        ]

    async def test_first_outcome_ignores_opt_outs(self, emails, seed):
        profile = await seed.profile(
            email_preferences={"welcome": False, "reminders": False, "weekly_review": False}
        )
        await record_outcomes(seed, profile.id, 1)

        results = await emails.on_outcome_recorded(profile.id, now=NOW)

        assert results[0].status == "sent"

    async def test_second_outcome_sends_nothing(self, emails, seed, transport):
        profile = await seed.profile()
        await record_outcomes(seed, profile.id, 2)

        assert await emails.on_outcome_recorded(profile.id, now=NOW) == []
        assert transport.messages == []

    async def test_third_outcome_pro_moment(self, emails, seed):
        profile = await seed.profile(is_pro=False)
        await record_outcomes(seed, profile.id, 3)

        results = await emails.on_outcome_recorded(profile.id, now=NOW)

        assert [(r.email_type, r.status) for r in results] == [
            (EmailType.PRO_MOMENT, "sent")
        ]

    async def test_pro_users_skip_pro_moment(self, emails, seed, transport):
        profile = await seed.profile(is_pro=True)
        await record_outcomes(seed, profile.id, 3)

        assert await emails.on_outcome_recorded(profile.id, now=NOW) == []
        assert transport.messages == []

    async def test_repeated_trigger_is_idempotent(self, emails, seed, transport):
        profile = await seed.profile()
        await record_outcomes(seed, profile.id, 1)

        await emails.on_outcome_recorded(profile.id, now=NOW)
        again = await emails.on_outcome_recorded(profile.id, now=NOW + timedelta(minutes=5))

        assert again[0].status == "skipped"
        assert len(transport.messages) == 1

    async def test_milestone_never_repeats_after_window(self, emails, seed, transport):
        profile = await seed.profile()
        await record_outcomes(seed, profile.id, 1)
        await emails.on_outcome_recorded(profile.id, now=NOW)

        # Outcome count back at one long after the dedup window closed
        later = await emails.on_outcome_recorded(profile.id, now=NOW + timedelta(days=90))

        assert [(r.email_type, r.status, r.reason) for r in later] == [
            (EmailType.FIRST_OUTCOME, "skipped", "already sent")
        ]
        assert len(transport.messages) == 1

    async def test_failed_milestone_is_retried(self, session, seed, settings):
        profile = await seed.profile()
        await record_outcomes(seed, profile.id, 1)
        failing = EngagementEmails(session, RecordingTransport(fail=True), settings)
        await failing.on_outcome_recorded(profile.id, now=NOW)

        working = RecordingTransport()
        retry = await EngagementEmails(session, working, settings).on_outcome_recorded(
            profile.id, now=NOW + timedelta(minutes=1)
        )

        assert retry[0].status == "sent"
        assert len(working.messages) == 1
