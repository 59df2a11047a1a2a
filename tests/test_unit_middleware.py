"""
Tests for request size limits, security headers and request logging.
"""

import json
import logging

import httpx
import pytest
from fastapi import FastAPI, Request

from ticketing.core.middleware import RequestSizeLimitMiddleware
from ticketing.core.request_logging import RequestLoggingMiddleware, sanitize_headers
from ticketing.core.security_middleware import API_CSP, DOCS_CSP, SecurityHeadersMiddleware


def _echo_app() -> FastAPI:
    app = FastAPI()

    @app.post("/echo")
    async def echo(request: Request):
        return {"size": len(await request.body())}

    return app


async def _post(app: FastAPI, **kwargs) -> httpx.Response:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.post("/echo", **kwargs)


class TestRequestSizeLimit:
    @pytest.mark.anyio
    async def test_allows_small_body(self):
        app = _echo_app()
        app.add_middleware(RequestSizeLimitMiddleware, max_size_mb=1)

        response = await _post(app, content=b"x" * 100)

        assert response.status_code == 200
        assert response.json() == {"size": 100}

    @pytest.mark.anyio
    async def test_rejects_large_body(self):
        app = _echo_app()
        app.add_middleware(RequestSizeLimitMiddleware, max_size_mb=1)

        response = await _post(app, content=b"x" * (1024 * 1024 + 1))

        assert response.status_code == 413
        assert response.json()["error"] == "RequestTooLarge"

    @pytest.mark.anyio
    async def test_rejects_on_declared_length(self):
        app = _echo_app()
        app.add_middleware(RequestSizeLimitMiddleware, max_size_mb=1)

        response = await _post(
            app, content=b"{}", headers={"Content-Length": str(5 * 1024 * 1024)}
        )

        assert response.status_code == 413


class TestSecurityHeaders:
    @pytest.mark.anyio
    async def test_api_responses_get_strict_headers(self, client: httpx.AsyncClient):
        response = await client.get("/api/v1/health")

        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Content-Security-Policy"] == API_CSP
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "camera=(self)" in response.headers["Permissions-Policy"]
        assert response.headers["Strict-Transport-Security"] == "max-age=31536000; includeSubDomains"

    @pytest.mark.anyio
    async def test_docs_get_relaxed_policy(self):
        app = FastAPI()
        app.add_middleware(SecurityHeadersMiddleware, preload=True)
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/docs")

        assert response.headers["Content-Security-Policy"] == DOCS_CSP
        assert "X-Frame-Options" not in response.headers
        assert response.headers["Strict-Transport-Security"].endswith("; preload")


class TestRequestLogging:
    def test_sanitize_headers_redacts_credentials(self):
        headers = {
            "Authorization": "Bearer abc",
            "X-Metrics-Token": "m",
            "Accept": "application/json",
        }

        assert sanitize_headers(headers) == {
            "Authorization": "***REDACTED***",
            "X-Metrics-Token": "***REDACTED***",
            "Accept": "application/json",
        }

    @pytest.mark.anyio
    async def test_logs_one_entry_per_call(self, caplog):
        app = _echo_app()
        app.add_middleware(RequestLoggingMiddleware, enabled=True)

        with caplog.at_level(logging.INFO, logger="ticketing.api"):
            await _post(app, json={"password": "hunter22"}, headers={"Authorization": "Bearer t"})

        entries = [json.loads(r.getMessage()) for r in caplog.records if r.name == "ticketing.api"]
        assert len(entries) == 1
        assert entries[0]["request"]["path"] == "/echo"
        assert entries[0]["request"]["headers"]["authorization"] == "***REDACTED***"
        assert entries[0]["response"]["status_code"] == 200
        assert "hunter22" not in caplog.text
