"""
Tests for permission-based access control.
"""

import pytest

from ticketing.core.errors import ForbiddenError
from ticketing.core.security.permissions import (
    ADMIN_PERMISSIONS,
    BASE_PERMISSIONS,
    permissions_for_role,
    require_permission,
    require_role,
)


class TestRequireRole:
    def test_require_role_success(self):
        role_checker = require_role("admin")

        user_payload = {"sub": "user123", "role": "admin"}

        result = role_checker(user_payload)
        assert result == user_payload

    def test_require_role_failure(self):
        role_checker = require_role("admin")

        user_payload = {"sub": "user123", "role": "organizer"}

        with pytest.raises(ForbiddenError) as exc_info:
            role_checker(user_payload)
        assert exc_info.value.details == {"required_role": "admin", "user_role": "organizer"}


class TestRequirePermission:
    def test_require_permission_success(self):
        permission_checker = require_permission("order:create")

        user_payload = {"sub": "user123", "permissions": ["order:create", "event:read"]}

        result = permission_checker(user_payload)
        assert result == user_payload

    def test_require_permission_failure(self):
        permission_checker = require_permission("payout:review")

        user_payload = {"sub": "user123", "permissions": ["order:create"]}

        with pytest.raises(ForbiddenError):
            permission_checker(user_payload)

    def test_require_permission_without_claim(self):
        permission_checker = require_permission("order:create")

        with pytest.raises(ForbiddenError):
            permission_checker({"sub": "user123"})


class TestRolePermissions:
    def test_attendees_and_organizers_share_base_permissions(self):
        assert permissions_for_role("attendee") == sorted(BASE_PERMISSIONS)
        assert permissions_for_role("organizer") == sorted(BASE_PERMISSIONS)

    def test_admin_gets_review_permissions(self):
        admin = permissions_for_role("admin")

        assert admin == sorted(ADMIN_PERMISSIONS)
        assert {"audit:read", "payout:review", "dispute:resolve"} <= set(admin)

    def test_unknown_role_gets_nothing(self):
        assert permissions_for_role("superuser") == []

    def test_base_permissions_exclude_admin_actions(self):
        assert "audit:read" not in BASE_PERMISSIONS
        assert "payout:review" not in BASE_PERMISSIONS
