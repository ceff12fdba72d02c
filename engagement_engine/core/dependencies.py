"""FastAPI dependencies for sessions, trigger authentication and mail."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..services.mail import MailTransport, get_mail_transport
from .config import Settings, get_settings
from .database import get_session
from .security import verify_shared_secret

logger = logging.getLogger(__name__)

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


async def verify_cron_secret(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Dependency that admits only callers presenting ``Bearer <CRON_SECRET>``."""
    provided = credentials.credentials if credentials else None
    if not verify_shared_secret(provided, settings.cron_secret):
        logger.warning("Rejected trigger with missing or invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Type aliases for cleaner dependency injection
SessionDep = Annotated[AsyncSession, Depends(get_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
MailTransportDep = Annotated[MailTransport, Depends(get_mail_transport)]
CronAuthDep = Depends(verify_cron_secret)
