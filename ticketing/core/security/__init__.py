"""
Security module - token verification, password hashing and authorization.

Submodules:

- passwords.py: bcrypt password hashing via passlib
- tokens.py: HS256 access/refresh token issuing and decoding
- jwt_verification.py: bearer token verification dependency
- permissions.py: role -> permission mapping and FastAPI dependencies
- utils.py: helpers for reading token payloads

Import directly from this module, or from submodules for more granular access.
"""

from .jwt_verification import (
    NOT_AUTHENTICATED_MSG,
    get_current_user,
    verify_access_token,
)
from .passwords import MIN_PASSWORD_LENGTH, hash_password, verify_password
from .permissions import (
    ROLE_PERMISSIONS,
    permissions_for_role,
    require_permission,
    require_role,
)
from .tokens import (
    ACCESS_TOKEN_TYPE,
    INVALID_OR_EXPIRED_TOKEN_MSG,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_token,
)
from .utils import (
    get_user_id,
    get_user_permissions,
    get_user_role,
    get_user_sub,
    has_permission,
)

__all__ = [
    "ACCESS_TOKEN_TYPE",
    "INVALID_OR_EXPIRED_TOKEN_MSG",
    "MIN_PASSWORD_LENGTH",
    "NOT_AUTHENTICATED_MSG",
    "REFRESH_TOKEN_TYPE",
    "ROLE_PERMISSIONS",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    "get_current_user",
    "get_user_id",
    "get_user_permissions",
    "get_user_role",
    "get_user_sub",
    "has_permission",
    "hash_password",
    "hash_token",
    "permissions_for_role",
    "require_permission",
    "require_role",
    "verify_access_token",
    "verify_password",
]
