"""
Database maintenance commands.

Usage:
    uv run db-init              # Create all tables from the ORM metadata
    uv run sessions-cleanup     # Delete expired and long-revoked sessions

Both read DATABASE_URL_APP (and ENV_FILE) like the API does.
"""

from __future__ import annotations

import asyncio
import logging

from ticketing.core.config import settings
from ticketing.core.db import get_async_engine, reset_async_engine, session_scope
from ticketing.core.observability import configure_structured_logging
from ticketing.db.models import Base
from ticketing.repos.auth_repo import cleanup_expired_sessions

logger = logging.getLogger(__name__)


async def _create_tables() -> None:
    engine = get_async_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Created %d tables", len(Base.metadata.tables))
    finally:
        await reset_async_engine()


async def _cleanup_sessions() -> int:
    try:
        async with session_scope() as db:
            return await cleanup_expired_sessions(db)
    finally:
        await reset_async_engine()


def db_init() -> None:
    configure_structured_logging(settings.app_log_level)
    asyncio.run(_create_tables())


def sessions_cleanup() -> None:
    configure_structured_logging(settings.app_log_level)
    removed = asyncio.run(_cleanup_sessions())
    logger.info("Removed %d sessions", removed)
