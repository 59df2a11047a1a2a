"""
Helpers for reading user information out of access token payloads.
"""

import logging
import uuid
from typing import Any

from ticketing.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def get_user_sub(payload: dict[str, Any]) -> str:
    """
    Extract the subject (user id) from the token payload.

    Raises:
        UnauthorizedError: If the 'sub' claim is missing
    """
    sub = payload.get("sub")
    if not sub:
        logger.error("JWT payload missing 'sub' claim")
        raise UnauthorizedError("Invalid token - missing user identifier")
    return str(sub)


def get_user_id(user: dict[str, Any]) -> uuid.UUID:
    """
    User id of the authenticated caller as a UUID.

    Example:
        @router.post("/orders")
        async def create_order(payload: OrderCreate, db: AsyncDbSession, user: CurrentUser):
            buyer_id = get_user_id(user)
    """
    sub = get_user_sub(user)
    try:
        return uuid.UUID(sub)
    except ValueError:
        raise UnauthorizedError("Invalid token - malformed user identifier")


def get_user_role(payload: dict[str, Any]) -> str:
    return str(payload.get("role") or "")


def get_user_permissions(payload: dict[str, Any]) -> list[str]:
    permissions = payload.get("permissions", [])
    if isinstance(permissions, list):
        return permissions
    return []


def has_permission(payload: dict[str, Any], required_permission: str) -> bool:
    return required_permission in get_user_permissions(payload)
