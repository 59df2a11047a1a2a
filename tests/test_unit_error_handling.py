"""
Tests for error handling and sanitization.

Tests cover:
- Domain exception to HTTP status mapping
- Error detail redaction in production
- Structured error bodies from the API
"""

import httpx
import pytest

from ticketing.core.config import AppEnvironment, settings
from ticketing.core.errors import (
    CapacityError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TicketingError,
    UnauthorizedError,
    ValidationError,
    get_status_code,
)
from ticketing.main import _sanitize_error_details


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (ValidationError("bad"), 400),
            (UnauthorizedError("who"), 401),
            (ForbiddenError("no"), 403),
            (NotFoundError("gone"), 404),
            (ConflictError("dup"), 409),
            (InvalidStateError("state"), 409),
            (CapacityError("full"), 409),
        ],
    )
    def test_maps_domain_errors(self, error, status_code):
        assert get_status_code(error) == status_code

    def test_unknown_errors_are_500(self):
        assert get_status_code(RuntimeError("boom")) == 500
        assert get_status_code(TicketingError("base")) == 500

    def test_details_default_to_empty(self):
        error = CapacityError("Not enough tickets")

        assert error.details == {}
        assert str(error) == "Not enough tickets"


class TestSanitizeErrorDetails:
    def test_returns_details_untouched_outside_production(self):
        details = {"file_path": "/srv/ticketing/main.py"}

        assert _sanitize_error_details(details) == details

    def test_redacts_sensitive_values_in_production(self, monkeypatch):
        monkeypatch.setattr(settings, "app_env", AppEnvironment.PROD)

        result = _sanitize_error_details(
            {
                "file_path": "/srv/ticketing/repos/order_repo.py",
                "sql": "SELECT * FROM orders WHERE id = 1",
                "nested": {"table": "table=orders"},
                "items": [{"query": "DELETE FROM tickets WHERE id = 2"}, "plain"],
                "available": 3,
                "reason": "Sold out",
            }
        )

        assert result == {
            "file_path": "[REDACTED]",
            "sql": "[REDACTED]",
            "nested": {"table": "[REDACTED]"},
            "items": [{"query": "[REDACTED]"}, "plain"],
            "available": 3,
            "reason": "Sold out",
        }


class TestErrorResponses:
    @pytest.mark.anyio
    async def test_unauthenticated_request_gets_structured_401(self, client: httpx.AsyncClient):
        response = await client.get("/api/v1/orders")

        assert response.status_code == 401
        assert response.json()["error"] == "UnauthorizedError"

    @pytest.mark.anyio
    async def test_metrics_denial_uses_http_exception_body(self, client: httpx.AsyncClient):
        response = await client.get("/metrics", headers={"X-Metrics-Token": "wrong"})

        assert response.status_code == 403
        assert response.json() == {
            "error": "HTTPException",
            "message": "Invalid metrics token",
            "details": {},
        }
