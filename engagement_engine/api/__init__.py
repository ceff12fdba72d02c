"""API routes for the engagement engine."""

from fastapi import APIRouter

from .cron import router as cron_router
from .health import router as health_router
from .notifications import router as notifications_router

# Main API router
api_router = APIRouter()

# Scheduled notification jobs
api_router.include_router(cron_router)

# Triggers called by the CRUD layer
api_router.include_router(health_router)
api_router.include_router(notifications_router)

__all__ = ["api_router"]
