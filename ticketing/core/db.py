"""
Database connection and session management.

Provides the async SQLAlchemy engine and session factory used by the
FastAPI dependencies. Engines are created lazily on first use so that
importing the application never opens a connection.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ticketing.core.config import settings

logger = logging.getLogger(__name__)

_async_engine: AsyncEngine | None = None
_async_sessionmaker: async_sessionmaker[AsyncSession] | None = None
_telemetry_instrumented: bool = False


def _engine_kwargs(url: str) -> dict[str, Any]:
    """Pool configuration per backend.

    SQLite (used for local runs and tests) does not accept the queue pool
    sizing arguments.
    """
    if url.startswith("sqlite"):
        return {"echo": False}

    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
        "echo": False,
        "connect_args": {"server_settings": {"timezone": "UTC"}, "timeout": 30},
    }


def get_async_engine() -> AsyncEngine:
    """
    Create and configure the async SQLAlchemy engine.

    Uses asyncpg for PostgreSQL URLs. Any other async URL (for example
    ``sqlite+aiosqlite``) is passed through unchanged.

    Returns:
        Configured async SQLAlchemy engine
    """
    global _async_engine

    if _async_engine is not None:
        return _async_engine

    url = settings.async_url
    if not url:
        raise RuntimeError("DATABASE_URL_APP is required")

    _async_engine = create_async_engine(url, **_engine_kwargs(url))
    _instrument_sqlalchemy(_async_engine)
    return _async_engine


def _instrument_sqlalchemy(engine: AsyncEngine) -> None:
    """Instrument the engine with OpenTelemetry once per process."""
    global _telemetry_instrumented

    if _telemetry_instrumented:
        return

    from ticketing.core.telemetry import instrument_sqlalchemy

    instrument_sqlalchemy(engine.sync_engine)
    _telemetry_instrumented = True


def get_async_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get or create the async sessionmaker."""
    global _async_sessionmaker
    if _async_sessionmaker is not None:
        return _async_sessionmaker

    _async_sessionmaker = async_sessionmaker(
        bind=get_async_engine(),
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    return _async_sessionmaker


async def reset_async_engine() -> None:
    """Dispose the engine and forget the sessionmaker.

    Useful for tests to ensure fresh connections on new event loops.
    """
    global _async_engine, _async_sessionmaker

    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_sessionmaker = None


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session for work outside a request (maintenance jobs, scripts).

    Commits on success and rolls back on error.

    Usage:
        async with session_scope() as db:
            await cleanup_expired_sessions(db)
    """
    session_maker = get_async_sessionmaker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_async_db_session() -> AsyncIterator[AsyncSession]:
    """
    Async database session dependency for FastAPI endpoints.

    Re-exported from ticketing.core.dependencies together with the
    ``AsyncDbSession`` alias; lives here so the auth dependency can use it
    without importing the dependencies module.

    Yields:
        Async SQLAlchemy database session
    """
    session_maker = get_async_sessionmaker()
    async with session_maker() as session:
        yield session
