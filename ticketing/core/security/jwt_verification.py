"""
Bearer token verification for FastAPI routes.

An access token is accepted when its signature and expiry check out, its
type is "access", and the session it names has not been revoked.
"""

import logging
import uuid
from typing import Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.db import get_async_db_session
from ticketing.core.errors import UnauthorizedError
from ticketing.core.observability import set_user_id
from ticketing.db.models import UserSession

from .tokens import ACCESS_TOKEN_TYPE, INVALID_OR_EXPIRED_TOKEN_MSG, decode_token

logger = logging.getLogger(__name__)

# auto_error=False so a missing header goes through our own 401 body
_optional_security = HTTPBearer(auto_error=False)

NOT_AUTHENTICATED_MSG = "Not authenticated"


async def verify_access_token(db: AsyncSession, token: str) -> dict[str, Any]:
    """
    Decode an access token and check that its session is still active.

    Raises:
        UnauthorizedError: If the token is invalid, expired or revoked
    """
    payload = decode_token(token, ACCESS_TOKEN_TYPE)

    try:
        session_id = uuid.UUID(str(payload["sid"]))
    except ValueError:
        raise UnauthorizedError(INVALID_OR_EXPIRED_TOKEN_MSG)

    session = await db.get(UserSession, session_id)
    if session is None or session.revoked_at is not None:
        logger.warning("Access token presented for revoked session %s", session_id)
        raise UnauthorizedError(INVALID_OR_EXPIRED_TOKEN_MSG)

    return payload


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_optional_security),
    db: AsyncSession = Depends(get_async_db_session),
) -> dict[str, Any]:
    """
    FastAPI dependency to extract and verify the current user.

    Usage:
        @router.get("/protected")
        async def protected_endpoint(user: dict = Depends(get_current_user)):
            return {"user_id": user["sub"]}

    Returns:
        Decoded access token payload

    Raises:
        UnauthorizedError: If the token is missing or invalid
    """
    if credentials is None:
        logger.warning("Missing Authorization header")
        raise UnauthorizedError(NOT_AUTHENTICATED_MSG)

    payload = await verify_access_token(db, credentials.credentials)
    set_user_id(payload["sub"])
    return payload
