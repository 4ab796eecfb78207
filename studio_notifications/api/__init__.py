"""API routes for Studio Notifications."""

from fastapi import APIRouter

from .admin import router as admin_router
from .auth import router as auth_router
from .cron import router as cron_router
from .notifications import router as notifications_router

# Main API router
api_router = APIRouter()

# Credential refresh for the client sync engine
api_router.include_router(auth_router)

# Inbox read surface
api_router.include_router(notifications_router)

# Time trigger (CRON_SECRET) and admin broadcast
api_router.include_router(cron_router)
api_router.include_router(admin_router)

__all__ = ["api_router"]
