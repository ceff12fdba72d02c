"""SQLAlchemy ORM Models for the engagement engine."""

from .base import Base, TimestampMixin, UUIDMixin, as_utc
from .models import (
    # Enums
    DecisionStatus,
    EmailType,
    OutcomeResult,
    SendStatus,
    # User-owned data
    Profile,
    Decision,
    Outcome,
    CheckIn,
    # Engine-owned data
    HealthSnapshot,
    SendLog,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "as_utc",
    # Enums
    "DecisionStatus",
    "EmailType",
    "OutcomeResult",
    "SendStatus",
    # User-owned data
    "Profile",
    "Decision",
    "Outcome",
    "CheckIn",
    # Engine-owned data
    "HealthSnapshot",
    "SendLog",
]
