"""
Idempotency Guard: the send log behind every notification.

A send is reserved by claiming a row keyed by (user, type, target, window
bucket) with a single ``INSERT ... ON CONFLICT DO UPDATE ... WHERE``. The
statement inserts a fresh claim, re-claims a row whose last attempt failed or
whose claim went stale, and otherwise returns no row.

Buckets are fixed, so a window can straddle two of them. Before inserting,
``claim`` also refuses when any bucket holds a send made within the window or
a claim that is still in flight. Both checks see only committed rows, so the
dispatcher commits each claim before sending.

``recently_sent`` is a bulk pre-filter over the same two conditions that saves
claim round trips.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import DEFAULT_ENGAGEMENT_CONFIG, EngagementConfig
from ..core.database import dialect_insert
from ..models import EmailType, SendLog, SendStatus, as_utc
from .eligibility import Candidate


logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000


@dataclass
class SendClaim:
    """Ownership of one send-log row for the duration of a send."""
    log_id: UUID
    candidate: Candidate
    window_bucket: int
    claimed_at: datetime


class SendLogGuard:
    """Deduplicates notifications through the email_logs table."""

    def __init__(
        self,
        session: AsyncSession,
        config: EngagementConfig = DEFAULT_ENGAGEMENT_CONFIG,
        claim_timeout: timedelta = timedelta(minutes=15),
    ):
        self._session = session
        self._config = config
        self._claim_timeout = claim_timeout

    def window_bucket(self, email_type: EmailType, now: datetime) -> int:
        """Index of the dedup window that ``now`` falls into."""
        window = self._config.dedup_window(email_type)
        return int(now.timestamp() // window.total_seconds())

    async def recently_sent(
        self,
        candidates: Iterable[Candidate],
        now: datetime | None = None,
    ) -> set[tuple[UUID, EmailType, str]]:
        """
        Keys of candidates already sent within their category's window, or
        with a claim still in flight.

        One query for the whole batch.
        """
        now = now or datetime.now(timezone.utc)
        candidates = list(candidates)
        if not candidates:
            return set()

        user_ids = {c.user_id for c in candidates}
        email_types = {c.email_type for c in candidates}
        widest = max(self._config.dedup_window(t) for t in email_types)

        result = await self._session.execute(
            select(
                SendLog.user_id,
                SendLog.email_type,
                SendLog.target_key,
                SendLog.status,
                SendLog.sent_at,
            ).where(
                SendLog.user_id.in_(user_ids),
                SendLog.email_type.in_(email_types),
                or_(
                    and_(
                        SendLog.status == SendStatus.SENT,
                        SendLog.sent_at >= now - widest,
                    ),
                    self._in_flight(now),
                ),
            )
        )

        in_flight: set[tuple[UUID, EmailType, str]] = set()
        last_sent: dict[tuple[UUID, EmailType, str], datetime] = {}
        for user_id, email_type, target_key, status, sent_at in result.all():
            key = (user_id, email_type, target_key)
            if status == SendStatus.CLAIMED:
                in_flight.add(key)
                continue
            sent_at = as_utc(sent_at)
            if key not in last_sent or sent_at > last_sent[key]:
                last_sent[key] = sent_at

        blocked = set()
        for candidate in candidates:
            if candidate.key in in_flight:
                blocked.add(candidate.key)
                continue
            sent_at = last_sent.get(candidate.key)
            if sent_at is None:
                continue
            if sent_at >= now - self._config.dedup_window(candidate.email_type):
                blocked.add(candidate.key)
        return blocked

    def _in_flight(self, now: datetime):
        """Rows claimed by a run that has not yet finished or gone stale."""
        return and_(
            SendLog.status == SendStatus.CLAIMED,
            SendLog.claimed_at >= now - self._claim_timeout,
        )

    async def _blocked(self, candidate: Candidate, now: datetime) -> bool:
        """Whether any bucket holds a recent send or a live claim for ``candidate``."""
        window = self._config.dedup_window(candidate.email_type)
        existing = await self._session.scalar(
            select(SendLog.id)
            .where(
                SendLog.user_id == candidate.user_id,
                SendLog.email_type == candidate.email_type,
                SendLog.target_key == candidate.target_key,
                or_(
                    and_(
                        SendLog.status == SendStatus.SENT,
                        SendLog.sent_at >= now - window,
                    ),
                    self._in_flight(now),
                ),
            )
            .limit(1)
        )
        return existing is not None

    async def claim(
        self,
        candidate: Candidate,
        now: datetime | None = None,
    ) -> SendClaim | None:
        """
        Atomically reserve the send for ``candidate``.

        Returns None when another run already sent it within the window or
        is still sending it.
        """
        now = now or datetime.now(timezone.utc)
        bucket = self.window_bucket(candidate.email_type, now)
        stale_before = now - self._claim_timeout

        if await self._blocked(candidate, now):
            logger.info(
                f"Send blocked by a recent or in-flight send: "
                f"{candidate.email_type.value} for user {candidate.user_id} "
                f"{candidate.target_key}".rstrip()
            )
            return None

        insert = dialect_insert(self._session)
        stmt = insert(SendLog).values(
            id=uuid4(),
            user_id=candidate.user_id,
            email_type=candidate.email_type,
            target_id=candidate.target_id,
            target_key=candidate.target_key,
            window_bucket=bucket,
            status=SendStatus.CLAIMED,
            claimed_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                SendLog.user_id,
                SendLog.email_type,
                SendLog.target_key,
                SendLog.window_bucket,
            ],
            set_={
                "status": SendStatus.CLAIMED,
                "claimed_at": now,
                "sent_at": None,
                "error_message": None,
            },
            where=or_(
                SendLog.status == SendStatus.FAILED,
                (SendLog.status == SendStatus.CLAIMED)
                & (SendLog.claimed_at < stale_before),
            ),
        ).returning(SendLog.id)

        result = await self._session.execute(stmt)
        log_id = result.scalar_one_or_none()
        if log_id is None:
            logger.info(
                f"Send already claimed: {candidate.email_type.value} "
                f"for user {candidate.user_id} {candidate.target_key}".rstrip()
            )
            return None

        return SendClaim(
            log_id=log_id,
            candidate=candidate,
            window_bucket=bucket,
            claimed_at=now,
        )

    async def mark_sent(self, claim: SendClaim, now: datetime | None = None) -> None:
        await self._session.execute(
            update(SendLog)
            .where(SendLog.id == claim.log_id)
            .values(
                status=SendStatus.SENT,
                sent_at=now or datetime.now(timezone.utc),
                error_message=None,
            )
        )

    async def mark_failed(self, claim: SendClaim, error: str) -> None:
        """Release a claim so a later run can retry the send."""
        await self._session.execute(
            update(SendLog)
            .where(SendLog.id == claim.log_id)
            .values(
                status=SendStatus.FAILED,
                error_message=error[:MAX_ERROR_LENGTH],
            )
        )

    async def ever_sent(self, candidate: Candidate) -> bool:
        """Whether ``candidate`` was delivered at any time, regardless of window."""
        existing = await self._session.scalar(
            select(SendLog.id)
            .where(
                SendLog.user_id == candidate.user_id,
                SendLog.email_type == candidate.email_type,
                SendLog.target_key == candidate.target_key,
                SendLog.status == SendStatus.SENT,
            )
            .limit(1)
        )
        return existing is not None
