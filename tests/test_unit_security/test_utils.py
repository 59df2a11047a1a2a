"""
Tests for utility functions in security module.
"""

import uuid

import pytest

from ticketing.core.errors import UnauthorizedError
from ticketing.core.security.utils import (
    get_user_id,
    get_user_permissions,
    get_user_role,
    get_user_sub,
    has_permission,
)


class TestGetUserSub:
    def test_get_user_sub(self):
        payload = {"sub": "user123"}
        assert get_user_sub(payload) == "user123"

    @pytest.mark.parametrize("payload", [{}, {"sub": ""}, {"sub": None}])
    def test_get_user_sub_missing(self, payload):
        with pytest.raises(UnauthorizedError):
            get_user_sub(payload)


class TestGetUserId:
    def test_get_user_id_returns_uuid(self):
        user_id = uuid.uuid4()

        assert get_user_id({"sub": str(user_id)}) == user_id

    def test_get_user_id_malformed(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            get_user_id({"sub": "not-a-uuid"})
        assert exc_info.value.message == "Invalid token - malformed user identifier"


class TestGetUserRole:
    def test_get_user_role(self):
        assert get_user_role({"role": "organizer"}) == "organizer"

    def test_get_user_role_missing(self):
        assert get_user_role({}) == ""


class TestGetUserPermissions:
    def test_get_user_permissions(self):
        payload = {"permissions": ["order:create", "event:read"]}
        assert get_user_permissions(payload) == ["order:create", "event:read"]

    def test_get_user_permissions_missing(self):
        assert get_user_permissions({}) == []

    def test_get_user_permissions_not_a_list(self):
        assert get_user_permissions({"permissions": "order:create"}) == []


class TestHasPermission:
    def test_has_permission_true(self):
        assert has_permission({"permissions": ["audit:read"]}, "audit:read") is True

    def test_has_permission_false(self):
        assert has_permission({"permissions": ["event:read"]}, "audit:read") is False
