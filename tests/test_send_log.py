"""
Tests for the Idempotency Guard.

These tests verify:
1. A claim succeeds once per (user, type, target, window)
2. Failed and stale claims can be re-claimed
3. recently_sent honours each category's window and in-flight claims
4. Windows that straddle two buckets still allow only one send
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from engagement_engine.models import EmailType, SendLog, SendStatus
from engagement_engine.services.eligibility import Candidate
from engagement_engine.services.send_log import SendLogGuard

from conftest import NOW


@pytest.fixture
def guard(session) -> SendLogGuard:
    return SendLogGuard(session, claim_timeout=timedelta(minutes=15))


@pytest.fixture
async def user_id(seed):
    profile = await seed.profile()
    return profile.id


async def count_logs(session) -> int:
    return await session.scalar(select(func.count(SendLog.id)))


class TestWindowBucket:

    def test_same_window_same_bucket(self, guard):
        assert guard.window_bucket(EmailType.STREAK_SAVE, NOW) == guard.window_bucket(
            EmailType.STREAK_SAVE, NOW + timedelta(hours=1)
        )

    def test_next_window_next_bucket(self, guard):
        bucket = guard.window_bucket(EmailType.STREAK_SAVE, NOW)
        assert guard.window_bucket(EmailType.STREAK_SAVE, NOW + timedelta(hours=24)) == bucket + 1

    def test_weekly_categories_use_week_buckets(self, guard):
        bucket = guard.window_bucket(EmailType.WEEKLY_REVIEW, NOW)
        assert bucket == int(NOW.timestamp() // timedelta(days=7).total_seconds())


class TestClaim:

    async def test_first_claim_wins(self, session, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)

        claim = await guard.claim(candidate, NOW)

        assert claim is not None
        log = await session.get(SendLog, claim.log_id)
        assert log.status == SendStatus.CLAIMED
        assert log.target_id is None
        assert log.target_key == ""

    async def test_second_claim_in_window_loses(self, session, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)

        first = await guard.claim(candidate, NOW)
        second = await guard.claim(candidate, NOW + timedelta(minutes=1))

        assert first is not None
        assert second is None
        assert await count_logs(session) == 1

    async def test_sent_claim_blocks_later_claims(self, session, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)
        claim = await guard.claim(candidate, NOW)
        await guard.mark_sent(claim, NOW)

        assert await guard.claim(candidate, NOW + timedelta(hours=1)) is None

    async def test_failed_claim_can_be_reclaimed(self, session, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)
        claim = await guard.claim(candidate, NOW)
        await guard.mark_failed(claim, "smtp timeout")

        retry = await guard.claim(candidate, NOW + timedelta(minutes=1))

        assert retry is not None
        assert retry.log_id == claim.log_id
        log = await session.scalar(
            select(SendLog)
            .where(SendLog.id == claim.log_id)
            .execution_options(populate_existing=True)
        )
        assert log.status == SendStatus.CLAIMED
        assert log.error_message is None

    async def test_stale_claim_can_be_reclaimed(self, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)
        await guard.claim(candidate, NOW)

        assert await guard.claim(candidate, NOW + timedelta(minutes=5)) is None
        assert await guard.claim(candidate, NOW + timedelta(minutes=20)) is not None

    async def test_per_decision_claims_are_independent(self, session, guard, user_id):
        first = Candidate(user_id=user_id, email_type=EmailType.OUTCOME_DUE, target_id=uuid4())
        second = Candidate(user_id=user_id, email_type=EmailType.OUTCOME_DUE, target_id=uuid4())

        assert await guard.claim(first, NOW) is not None
        assert await guard.claim(second, NOW) is not None
        assert await count_logs(session) == 2

    async def test_new_window_allows_another_send(self, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)
        claim = await guard.claim(candidate, NOW)
        await guard.mark_sent(claim, NOW)

        assert await guard.claim(candidate, NOW + timedelta(days=1, minutes=1)) is not None


class TestRecentlySent:

    async def test_sent_within_window(self, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.WEEKLY_REVIEW)
        claim = await guard.claim(candidate, NOW - timedelta(days=6))
        await guard.mark_sent(claim, NOW - timedelta(days=6))

        assert await guard.recently_sent([candidate], NOW) == {candidate.key}

    async def test_sent_outside_window(self, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)
        claim = await guard.claim(candidate, NOW - timedelta(hours=30))
        await guard.mark_sent(claim, NOW - timedelta(hours=30))

        assert await guard.recently_sent([candidate], NOW) == set()

    async def test_failed_rows_do_not_block(self, guard, user_id):
        failed = Candidate(user_id=user_id, email_type=EmailType.WEEKLY_REVIEW)
        claim = await guard.claim(failed, NOW)
        await guard.mark_failed(claim, "rejected")

        assert await guard.recently_sent([failed], NOW) == set()

    async def test_in_flight_claim_blocks(self, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)
        await guard.claim(candidate, NOW)

        assert await guard.recently_sent([candidate], NOW + timedelta(minutes=1)) == {candidate.key}

    async def test_stale_claim_does_not_block(self, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)
        await guard.claim(candidate, NOW)

        assert await guard.recently_sent([candidate], NOW + timedelta(minutes=20)) == set()

    async def test_bulk_lookup_matches_targets(self, guard, user_id):
        sent = Candidate(user_id=user_id, email_type=EmailType.OUTCOME_DUE, target_id=uuid4())
        other = Candidate(user_id=user_id, email_type=EmailType.OUTCOME_DUE, target_id=uuid4())
        claim = await guard.claim(sent, NOW - timedelta(days=1))
        await guard.mark_sent(claim, NOW - timedelta(days=1))

        assert await guard.recently_sent([sent, other], NOW) == {sent.key}

    async def test_empty_batch(self, guard):
        assert await guard.recently_sent([], NOW) == set()


class TestBucketEdge:
    """Sends that straddle the boundary between two window buckets."""

    @pytest.fixture
    def edge(self, guard):
        bucket = guard.window_bucket(EmailType.STREAK_SAVE, NOW)
        seconds = timedelta(hours=24).total_seconds()
        return datetime.fromtimestamp((bucket + 1) * seconds, tz=timezone.utc)

    async def test_in_flight_claim_blocks_next_bucket(self, session, guard, user_id, edge):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)
        first = await guard.claim(candidate, edge - timedelta(seconds=1))
        await session.commit()

        after = edge + timedelta(seconds=1)
        assert guard.window_bucket(EmailType.STREAK_SAVE, after) == first.window_bucket + 1
        assert await guard.recently_sent([candidate], after) == {candidate.key}
        assert await guard.claim(candidate, after) is None
        assert await count_logs(session) == 1

    async def test_sent_row_blocks_next_bucket(self, session, guard, user_id, edge):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)
        claim = await guard.claim(candidate, edge - timedelta(seconds=1))
        await guard.mark_sent(claim, edge - timedelta(seconds=1))
        await session.commit()

        assert await guard.claim(candidate, edge + timedelta(hours=1)) is None

    async def test_failed_claim_does_not_block_next_bucket(self, session, guard, user_id, edge):
        candidate = Candidate(user_id=user_id, email_type=EmailType.STREAK_SAVE)
        claim = await guard.claim(candidate, edge - timedelta(seconds=1))
        await guard.mark_failed(claim, "rejected")
        await session.commit()

        retry = await guard.claim(candidate, edge + timedelta(seconds=1))

        assert retry is not None
        assert retry.log_id != claim.log_id


class TestEverSent:

    async def test_ever_sent_ignores_window(self, guard, user_id):
        candidate = Candidate(user_id=user_id, email_type=EmailType.FIRST_OUTCOME)
        assert await guard.ever_sent(candidate) is False

        claim = await guard.claim(candidate, NOW - timedelta(days=400))
        await guard.mark_sent(claim, NOW - timedelta(days=400))

        assert await guard.ever_sent(candidate) is True
