"""Shared fixtures: an aiosqlite database per test, seed helpers, fake mail."""

from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from engagement_engine.core.config import Settings, get_settings
from engagement_engine.core.database import get_session
from engagement_engine.models import (
    Base,
    CheckIn,
    Decision,
    DecisionStatus,
    Outcome,
    OutcomeResult,
    Profile,
)
from engagement_engine.services.mail import MailTransport, get_mail_transport


# Wednesday afternoon; the calendar week started Sunday 2026-03-08
NOW = datetime(2026, 3, 11, 15, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 11)

CRON_SECRET = "test-cron-secret"


class RecordingTransport(MailTransport):
    """Mail transport that records messages instead of sending them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages: list[dict] = []

    async def send(self, to: str, subject: str, html: str) -> bool:
        self.messages.append({"to": to, "subject": subject, "html": html})
        return not self.fail


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    session_maker = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with session_maker() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        CRON_SECRET=CRON_SECRET,
        APP_URL="https://journal.test",
        REFERENCE_TIMEZONE="UTC",
    )


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


# =============================================================================
# SEED HELPERS
# =============================================================================


class Seed:
    """Writes user-owned rows the way the CRUD layer would."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def profile(
        self,
        email: str | None = "user@example.com",
        email_preferences: dict | None = None,
        is_pro: bool = False,
        display_name: str | None = "Sam",
    ) -> Profile:
        profile = Profile(
            id=uuid4(),
            email=email,
            display_name=display_name,
            email_preferences=email_preferences,
            is_pro=is_pro,
            created_at=NOW - timedelta(days=200),
        )
        self.session.add(profile)
        await self.session.commit()
        return profile

    async def decision(
        self,
        user_id: UUID,
        created_at: datetime,
        decided_at: datetime | None = None,
        confidence: int | None = 70,
        title: str = "Take the new job",
    ) -> Decision:
        decision = Decision(
            id=uuid4(),
            user_id=user_id,
            title=title,
            status=DecisionStatus.DECIDED if decided_at else DecisionStatus.OPEN,
            confidence_int=confidence,
            created_at=created_at,
            decided_at=decided_at,
            chosen_option_id=uuid4() if decided_at else None,
        )
        self.session.add(decision)
        await self.session.commit()
        return decision

    async def outcome(
        self,
        decision: Decision,
        completed_at: datetime,
        result: OutcomeResult = OutcomeResult.WIN,
        confidence_after: int | None = 70,
    ) -> Outcome:
        outcome = Outcome(
            id=uuid4(),
            decision_id=decision.id,
            result=result,
            confidence_after=confidence_after,
            completed_at=completed_at,
            created_at=completed_at,
        )
        self.session.add(outcome)
        await self.session.commit()
        return outcome

    async def checkin(self, user_id: UUID, day: date) -> CheckIn:
        checkin = CheckIn(id=uuid4(), user_id=user_id, date=day)
        self.session.add(checkin)
        await self.session.commit()
        return checkin

    async def checkins(self, user_id: UUID, *days: date) -> None:
        for day in days:
            await self.checkin(user_id, day)


@pytest.fixture
def seed(session: AsyncSession) -> Seed:
    return Seed(session)


# =============================================================================
# API
# =============================================================================


@pytest.fixture
async def app(session: AsyncSession, settings: Settings, transport: RecordingTransport) -> FastAPI:
    from engagement_engine.main import app

    async def override_get_session():
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_mail_transport] = lambda: transport
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {CRON_SECRET}"}
