"""Core application utilities."""

from .config import (
    DEFAULT_ENGAGEMENT_CONFIG,
    EngagementConfig,
    Settings,
    get_settings,
)
from .database import (
    async_session_factory,
    close_db,
    dialect_insert,
    engine,
    get_session,
    get_session_context,
    init_db,
)
from .security import verify_shared_secret

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "EngagementConfig",
    "DEFAULT_ENGAGEMENT_CONFIG",
    # Database
    "engine",
    "async_session_factory",
    "get_session",
    "get_session_context",
    "dialect_insert",
    "init_db",
    "close_db",
    # Security
    "verify_shared_secret",
]
