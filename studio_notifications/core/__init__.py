"""Core application utilities."""

from .config import Settings, get_settings
from .database import (
    async_session_factory,
    close_db,
    engine,
    get_session,
    get_session_context,
    get_session_factory,
    init_db,
)
from .dependencies import (
    AdminDep,
    CronDep,
    CurrentUser,
    CurrentUserDep,
    SessionDep,
    SessionFactoryDep,
    get_current_user,
    require_admin,
    require_cron_secret,
)
from .security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_cron_secret,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "engine",
    "async_session_factory",
    "get_session",
    "get_session_context",
    "get_session_factory",
    "init_db",
    "close_db",
    # Dependencies
    "CurrentUser",
    "get_current_user",
    "require_admin",
    "require_cron_secret",
    "CurrentUserDep",
    "AdminDep",
    "SessionDep",
    "SessionFactoryDep",
    "CronDep",
    # Security
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    "verify_cron_secret",
]
