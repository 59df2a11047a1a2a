"""
Permission-based access control for FastAPI endpoints.

Platform roles map to a fixed permission set that is embedded in the
access token. Organization-level checks (owner/manager/finance/staff)
are membership lookups done in ticketing.repos.org_repo.
"""

import logging
from typing import Any

from fastapi import Depends

from ticketing.core.errors import ForbiddenError
from ticketing.domain.enums import UserRole

from .utils import get_user_permissions, get_user_role, get_user_sub, has_permission

logger = logging.getLogger(__name__)

BASE_PERMISSIONS = frozenset(
    {
        "event:read",
        "org:create",
        "order:create",
        "ticket:transfer",
        "dispute:create",
        "notification:read",
    }
)

ADMIN_PERMISSIONS = BASE_PERMISSIONS | {
    "audit:read",
    "payout:review",
    "dispute:resolve",
}

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    UserRole.ATTENDEE.value: BASE_PERMISSIONS,
    UserRole.ORGANIZER.value: BASE_PERMISSIONS,
    UserRole.ADMIN.value: ADMIN_PERMISSIONS,
}


def permissions_for_role(role: str) -> list[str]:
    """Sorted permission list for a platform role; unknown roles get none."""
    return sorted(ROLE_PERMISSIONS.get(role, frozenset()))


def require_role(required_role: str):
    """
    Dependency factory checking the token's platform role claim.

    Args:
        required_role: Role value, e.g. "admin"

    Returns:
        FastAPI dependency function that checks the user's role
    """
    from ticketing.core.dependencies import get_current_user as _deps_get_current_user

    def role_checker(user: dict[str, Any] = Depends(_deps_get_current_user)) -> dict[str, Any]:
        role = get_user_role(user)
        if role != required_role:
            logger.warning(
                "Access denied - user %s lacks required role: %s. User role: %s",
                get_user_sub(user),
                required_role,
                role,
            )
            raise ForbiddenError(
                "Insufficient permissions",
                details={"required_role": required_role, "user_role": role},
            )
        return user

    return role_checker


def require_permission(required_permission: str):
    """
    Dependency factory for permission-based access control.

    Checks the 'permissions' claim in the access token.

    Example:
        @router.get("/audit-log")
        async def query(user: dict = Depends(require_permission("audit:read"))):
            ...
    """
    from ticketing.core.dependencies import get_current_user as _deps_get_current_user

    def permission_checker(
        user: dict[str, Any] = Depends(_deps_get_current_user),
    ) -> dict[str, Any]:
        if not has_permission(user, required_permission):
            user_permissions = get_user_permissions(user)
            logger.warning(
                "Access denied - user %s lacks permission: %s. User permissions: %s",
                get_user_sub(user),
                required_permission,
                user_permissions,
            )
            raise ForbiddenError(
                "Insufficient permissions",
                details={
                    "required_permission": required_permission,
                    "user_permissions": user_permissions,
                },
            )

        logger.debug("Permission check passed: user has %s", required_permission)
        return user

    return permission_checker
