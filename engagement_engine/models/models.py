"""SQLAlchemy ORM Models for the engagement engine.

Profiles, decisions, outcomes and check-ins are written by the CRUD layer and
only read here. Health snapshots and email logs are owned by this service.
"""

import datetime as dt
from datetime import date, datetime
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, TimestampMixin, UUIDMixin


# =============================================================================
# ENUMS
# =============================================================================


class DecisionStatus(str, PyEnum):
    OPEN = "open"
    DECIDED = "decided"
    COMPLETED = "completed"


class OutcomeResult(str, PyEnum):
    WIN = "win"
    NEUTRAL = "neutral"
    LOSS = "loss"


class EmailType(str, PyEnum):
    """Notification categories."""
    WELCOME = "welcome"
    OUTCOME_DUE = "outcome_due"
    OUTCOME_OVERDUE = "outcome_overdue"
    STREAK_SAVE = "streak_save"
    WEEKLY_REVIEW = "weekly_review"
    FIRST_OUTCOME = "first_outcome"  # System email, after the 1st outcome
    PRO_MOMENT = "pro_moment"  # System email, after the 3rd outcome



class SendStatus(str, PyEnum):
    """Lifecycle of a send-log row."""
    CLAIMED = "claimed"  # Reserved atomically, send in progress
    SENT = "sent"
    FAILED = "failed"  # Transport failed, row may be re-claimed


def _enum(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# USER-OWNED DATA (read-only here)
# =============================================================================


class Profile(Base):
    """Per-user profile; ``id`` is the auth user id."""

    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320))
    display_name: Mapped[str | None] = mapped_column(String(255))
    timezone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)
    email_preferences: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Per-category opt-outs: welcome, reminders, weekly_review",
    )
    is_pro: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )

    decisions: Mapped[list["Decision"]] = relationship(back_populates="owner")


class Decision(Base, UUIDMixin):
    """A logged decision."""

    __tablename__ = "decisions"

    user_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    status: Mapped[DecisionStatus] = mapped_column(
        _enum(DecisionStatus, "decision_status"),
        default=DecisionStatus.OPEN,
        nullable=False,
    )
    confidence_int: Mapped[int | None] = mapped_column(
        Integer, comment="Confidence at decision time, 0-100"
    )
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    decided_at: Mapped[datetime | None] = mapped_column()
    chosen_option_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))

    owner: Mapped["Profile"] = relationship(back_populates="decisions")
    outcome: Mapped["Outcome | None"] = relationship(
        back_populates="decision", uselist=False
    )

    __table_args__ = (
        CheckConstraint(
            "(decided_at IS NULL) = (chosen_option_id IS NULL)",
            name="decided_with_option",
        ),
        Index("idx_decisions_user_created", "user_id", "created_at"),
        Index("idx_decisions_decided_at", "decided_at"),
    )


class Outcome(Base, UUIDMixin):
    """What happened after a decision. At most one per decision."""

    __tablename__ = "outcomes"

    decision_id: Mapped[UUID] = mapped_column(
        ForeignKey("decisions.id"), unique=True, nullable=False
    )
    result: Mapped[OutcomeResult] = mapped_column(
        _enum(OutcomeResult, "outcome_result"), nullable=False
    )
    confidence_after: Mapped[int | None] = mapped_column(
        Integer, comment="Confidence after the fact, 0-100"
    )
    completed_at: Mapped[datetime] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )

    decision: Mapped["Decision"] = relationship(back_populates="outcome")


class CheckIn(Base, UUIDMixin):
    """Daily activity marker, independent of decisions."""

    __tablename__ = "checkins"

    user_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id"), nullable=False)
    date: Mapped[dt.date] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "date"),
    )


# =============================================================================
# ENGINE-OWNED DATA
# =============================================================================


class HealthSnapshot(Base, UUIDMixin, TimestampMixin):
    """One decision-health reading per user per calendar day."""

    __tablename__ = "decision_health_snapshots"

    user_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id"), nullable=False)
    snapshot_date: Mapped[date] = mapped_column(nullable=False)
    health_score: Mapped[int] = mapped_column(Integer, nullable=False)
    win_rate: Mapped[float] = mapped_column(Float, nullable=False)
    avg_calibration_gap: Mapped[float] = mapped_column(Float, nullable=False)
    completion_rate: Mapped[float] = mapped_column(Float, nullable=False)
    streak_length: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "snapshot_date"),
    )


class SendLog(Base, UUIDMixin):
    """Email send log used for deduplication.

    The unique constraint over (user, type, target_key, window_bucket) is what
    makes a claim atomic: two overlapping runs cannot both insert it.
    """

    __tablename__ = "email_logs"

    user_id: Mapped[UUID] = mapped_column(ForeignKey("profiles.id"), nullable=False)
    email_type: Mapped[EmailType] = mapped_column(
        _enum(EmailType, "email_type"), nullable=False
    )
    target_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        comment="Decision id for per-decision categories, NULL otherwise",
    )
    target_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="",
        comment="target_id as text, '' for user-level categories",
    )
    window_bucket: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[SendStatus] = mapped_column(
        _enum(SendStatus, "send_status"),
        default=SendStatus.CLAIMED,
        nullable=False,
    )
    claimed_at: Mapped[datetime] = mapped_column(nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column()
    error_message: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("user_id", "email_type", "target_key", "window_bucket"),
        Index("idx_email_logs_lookup", "user_id", "email_type", "sent_at"),
    )
