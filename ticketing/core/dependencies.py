"""
FastAPI dependency injection utilities.

Provides reusable dependencies for database sessions and authentication.
Authorization beyond "is logged in" goes through require_permission()
from ticketing.core.security, or through org membership checks in the repos.
"""

from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.db import get_async_db_session
from ticketing.core.security import get_current_user as _get_current_user

__all__ = [
    "AsyncDbSession",
    "CurrentUser",
    "get_async_db_session",
    "get_current_user",
]

# ============================================================================
# Database Dependencies
# ============================================================================

# Usage:
#     @router.get("/events")
#     async def list_events(db: AsyncDbSession): ...
AsyncDbSession = Annotated[AsyncSession, Depends(get_async_db_session)]


# ============================================================================
# Authentication Dependencies
# ============================================================================


def get_current_user(user: dict[str, Any] = Depends(_get_current_user)) -> dict[str, Any]:
    """
    Re-export of get_current_user from the security module.

    Use this dependency for endpoints that require authentication
    but no specific permission:

        @router.get("/tickets")
        async def list_tickets(db: AsyncDbSession, user: CurrentUser):
            ...

    Tests override this function to inject a fixed user.

    Returns:
        Decoded access token payload
    """
    return user


CurrentUser = Annotated[dict[str, Any], Depends(get_current_user)]
