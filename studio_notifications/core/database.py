"""Async engine, session factory and the request-scoped session dependency.

A request session commits when the handler returns and rolls back when it
raises. Writers that must not share the request's fate (the in-app channel,
the reminder sweeps) open their own sessions from ``async_session_factory``.
"""

import logging
import ssl
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _connect_args(url: str) -> dict:
    """asyncpg options for hosted Postgres behind pgbouncer."""
    if settings.environment != "production" and "supabase" not in url and "pooler" not in url:
        return {}

    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    logger.info("Database connection uses SSL without prepared statement caching")
    # Transaction-mode pgbouncer cannot keep prepared statements
    return {
        "ssl": context,
        "prepared_statement_cache_size": 0,
        "statement_cache_size": 0,
    }


engine = create_async_engine(
    settings.database_url_async,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    echo=settings.database_echo,
    pool_pre_ping=True,
    pool_recycle=300,
    connect_args=_connect_args(settings.database_url_async),
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one transactional session per request."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Request transaction rolled back: {e}")
            raise


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """The same transaction semantics for code running outside a request."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency for code that opens its own sessions."""
    return async_session_factory


async def init_db() -> None:
    """Create missing tables. Deployed databases are migrated instead."""
    from ..models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
