"""
Request/response logging middleware for local development and tests.

Logs one JSON entry per API call with method, path, query string,
sanitised headers, status code and duration. Bodies are never read:
auth routes carry passwords and refresh tokens, and checkout bodies
carry buyer data.
"""

import json
import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ticketing.core.config import AppEnvironment, settings
from ticketing.core.observability import get_region, get_request_id

logger = logging.getLogger("ticketing.api")

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-metrics-token",
    "x-health-token",
}

SKIP_PATHS = ("/metrics", "/api/v1/health", "/api/v1/readyz")


def sanitize_headers(headers: dict[str, str]) -> dict[str, str]:
    """Redact sensitive headers."""
    return {
        k: "***REDACTED***" if k.lower() in SENSITIVE_HEADERS else v for k, v in headers.items()
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every API call outside health and metrics endpoints."""

    def __init__(self, app: ASGIApp, enabled: bool = False) -> None:
        super().__init__(app)
        self.enabled = enabled or settings.app_env in (AppEnvironment.LOCAL, AppEnvironment.TEST)

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self.enabled or request.url.path in SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        log_entry = {
            "type": "api_call",
            "request_id": get_request_id() or "unknown",
            "request": {
                "method": request.method,
                "path": request.url.path,
                "query_params": str(request.query_params) or None,
                "headers": sanitize_headers(dict(request.headers)),
            },
            "response": {
                "status_code": response.status_code,
            },
            "performance": {
                "duration_ms": round(duration_ms, 2),
            },
        }

        region = get_region()
        if region:
            log_entry["region"] = region

        if response.status_code >= 500:
            logger.error(json.dumps(log_entry))
        elif response.status_code >= 400:
            logger.warning(json.dumps(log_entry))
        else:
            logger.info(json.dumps(log_entry))

        return response
