"""
Access and refresh token issuing and decoding.

Both tokens are HS256 JWTs signed with SECRET_KEY. Access tokens are
short-lived and carry the user's role and permissions; refresh tokens
only identify the session they belong to. Every token carries the
session id (``sid``) so revoking a session invalidates both.
"""

import hashlib
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from ticketing.core.config import settings
from ticketing.core.errors import UnauthorizedError
from ticketing.db.validators import utcnow

from .permissions import permissions_for_role

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

INVALID_OR_EXPIRED_TOKEN_MSG = "Invalid or expired token"


def create_access_token(
    *,
    user_id: uuid.UUID | str,
    email: str,
    role: str,
    session_id: uuid.UUID | str,
    now: datetime | None = None,
) -> tuple[str, int]:
    """
    Create a signed access token.

    Returns:
        (token, expires_in_seconds)
    """
    now = now or utcnow()
    expires_in = settings.access_token_expire_minutes * 60
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "permissions": permissions_for_role(role),
        "sid": str(session_id),
        "type": ACCESS_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
    }
    return jwt.encode(payload, settings.signing_key, algorithm=settings.algorithm), expires_in


def create_refresh_token(
    *, user_id: uuid.UUID | str, session_id: uuid.UUID | str, expires_at: datetime
) -> str:
    payload = {
        "sub": str(user_id),
        "sid": str(session_id),
        "type": REFRESH_TOKEN_TYPE,
        # Distinguishes refresh tokens issued within the same second
        "jti": uuid.uuid4().hex,
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, settings.signing_key, algorithm=settings.algorithm)


def decode_token(
    token: str, expected_type: str, error_message: str = INVALID_OR_EXPIRED_TOKEN_MSG
) -> dict[str, Any]:
    """
    Verify signature, expiry and token type.

    Raises:
        UnauthorizedError: With `error_message` on any failure
    """
    try:
        payload = jwt.decode(token, settings.signing_key, algorithms=[settings.algorithm])
    except JWTError as e:
        logger.warning("JWT verification failed: %s", e)
        raise UnauthorizedError(error_message)

    if payload.get("type") != expected_type:
        logger.warning("Token type mismatch: expected %s, got %s", expected_type, payload.get("type"))
        raise UnauthorizedError(error_message)

    if not payload.get("sub") or not payload.get("sid"):
        logger.warning("Token missing sub or sid claim")
        raise UnauthorizedError(error_message)

    return payload


def hash_token(token: str) -> str:
    """SHA-256 hex digest stored in place of the refresh token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
