import hmac
import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ticketing.api.routes.audit import router as audit_router
from ticketing.api.routes.auth import router as auth_router
from ticketing.api.routes.currency import router as currency_router
from ticketing.api.routes.disputes import router as disputes_router
from ticketing.api.routes.drafts import router as drafts_router
from ticketing.api.routes.events import router as events_router
from ticketing.api.routes.health import router as health_router
from ticketing.api.routes.inventory import router as inventory_router
from ticketing.api.routes.notifications import router as notifications_router
from ticketing.api.routes.orders import router as orders_router
from ticketing.api.routes.orgs import router as orgs_router
from ticketing.api.routes.payouts import router as payouts_router
from ticketing.api.routes.tickets import router as tickets_router
from ticketing.core.config import AppEnvironment, settings
from ticketing.core.errors import TicketingError, get_status_code
from ticketing.core.middleware import RequestSizeLimitMiddleware
from ticketing.core.observability import (
    ObservabilityMiddleware,
    configure_structured_logging,
    extract_request_context,
    metrics_endpoint,
)
from ticketing.core.rate_limit import RateLimitMiddleware
from ticketing.core.request_logging import RequestLoggingMiddleware
from ticketing.core.security_middleware import SecurityHeadersMiddleware
from ticketing.core.telemetry import (
    init_telemetry,
    instrument_fastapi,
    instrument_httpx,
    shutdown_telemetry,
)

# Configure structured logging before creating logger
if settings.observability_structured_logs:
    configure_structured_logging(settings.app_log_level)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

SENSITIVE_DETAIL_PATTERNS = [
    r"[/\\][\w/-]+\.py",  # File paths
    r"SELECT.*FROM.*WHERE",
    r"INSERT INTO.*VALUES",
    r"UPDATE.*SET.*WHERE",
    r"DELETE FROM.*WHERE",
    r"schema\s*[:=]\s*\w+",
    r"table\s*[:=]\s*\w+",
]


def _sanitize_error_details(details: dict[str, Any]) -> dict[str, Any]:
    """
    Redact file paths, SQL and schema names from error details in production.

    Outside production the details are returned untouched for debugging.
    """
    if settings.app_env != AppEnvironment.PROD:
        return details

    sanitized: dict[str, Any] = {}
    for key, value in details.items():
        if isinstance(value, str):
            if any(re.search(p, value, re.IGNORECASE) for p in SENSITIVE_DETAIL_PATTERNS):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = value
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_error_details(value)
        elif isinstance(value, list):
            sanitized[key] = [
                _sanitize_error_details(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            sanitized[key] = value

    return sanitized


def _log_security_event(
    request: Request,
    event_type: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Log security-related events for audit trail.

    Args:
        request: The incoming request
        event_type: Type of security event (e.g., "AUTH_FAILURE", "AUTHZ_FAILURE")
        status_code: HTTP status code
        details: Additional event details
    """
    security_event = {
        "event_type": event_type,
        "client_ip": request.client.host if request.client else "unknown",
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "user_agent": request.headers.get("user-agent", "unknown"),
        "details": details or {},
        **extract_request_context(request),
    }
    logger.warning(
        "Security event: %s",
        event_type,
        extra={"security_event": True, **security_event},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start tracing on startup and flush spans on shutdown."""
    init_telemetry()
    instrument_fastapi(app)
    instrument_httpx()
    # SQLAlchemy instrumentation happens in ticketing.core.db once the engine exists
    yield
    shutdown_telemetry()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Sets up:
    - OpenTelemetry tracing (lifespan)
    - Structured logging with correlation IDs
    - Observability, security header, CORS, size limit and rate limit middleware
    - Exception handlers for domain errors
    - API routers under /api/v1
    - Token-protected /metrics for Prometheus scraping
    """
    app = FastAPI(
        title="Ticketing API",
        description="Event ticketing: organizers, inventory, checkout, tickets and payouts",
        version="0.1.0",
        lifespan=lifespan,
    )

    # ============================================================================
    # Middleware
    # ============================================================================

    if settings.observability_enabled:
        app.add_middleware(ObservabilityMiddleware)

    app.add_middleware(SecurityHeadersMiddleware)

    if settings.app_env in (AppEnvironment.LOCAL, AppEnvironment.TEST):
        app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestSizeLimitMiddleware, max_size_mb=1)
    app.add_middleware(RateLimitMiddleware)

    # ============================================================================
    # Exception Handlers
    # ============================================================================

    @app.exception_handler(TicketingError)
    async def ticketing_error_handler(request: Request, exc: TicketingError) -> JSONResponse:
        """Map domain exceptions to their HTTP status and a structured body."""
        status_code = get_status_code(exc)
        context = {
            "details": exc.details,
            "path": request.url.path,
            **extract_request_context(request),
        }

        if status_code >= 500:
            logger.error("%s: %s", exc.__class__.__name__, exc.message, extra=context)
        else:
            logger.warning("%s: %s", exc.__class__.__name__, exc.message, extra=context)

        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.__class__.__name__,
                "message": exc.message,
                "details": _sanitize_error_details(exc.details),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Same body shape for framework HTTP errors; 401/403 are security events."""
        if exc.status_code == 401:
            _log_security_event(
                request, "AUTH_FAILURE", 401, details={"reason": str(exc.detail)}
            )
        elif exc.status_code == 403:
            _log_security_event(
                request, "AUTHZ_FAILURE", 403, details={"reason": str(exc.detail)}
            )
        elif exc.status_code >= 500:
            logger.error(
                "HTTP %s: %s",
                exc.status_code,
                exc.detail,
                extra={"path": request.url.path, **extract_request_context(request)},
            )

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "HTTPException", "message": exc.detail, "details": {}},
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all: log the traceback, return a generic 500."""
        logger.error(
            "Unhandled exception: %s",
            exc,
            exc_info=True,
            extra={"path": request.url.path, **extract_request_context(request)},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "details": {},
            },
        )

    # ============================================================================
    # Router Registration
    # ============================================================================

    for router in (
        health_router,
        auth_router,
        orgs_router,
        events_router,
        inventory_router,
        orders_router,
        tickets_router,
        drafts_router,
        payouts_router,
        disputes_router,
        notifications_router,
        audit_router,
        currency_router,
    ):
        app.include_router(router, prefix=API_PREFIX)

    # ============================================================================
    # Metrics Endpoint (Prometheus) - Token Protected
    # ============================================================================

    async def protected_metrics(request: Request) -> Response:
        """Prometheus metrics; always requires the X-Metrics-Token header."""
        expected_token = settings.metrics_token
        if not expected_token:
            logger.error(
                "Metrics endpoint accessed but METRICS_TOKEN not configured",
                extra={"security_event": True, "event_type": "METRICS_NOT_CONFIGURED"},
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Metrics token not configured. Set METRICS_TOKEN environment variable.",
            )

        # Constant-time comparison
        metrics_token = request.headers.get("X-Metrics-Token")
        if not hmac.compare_digest(metrics_token or "", expected_token):
            logger.warning(
                "Unauthorized metrics access attempt",
                extra={
                    "security_event": True,
                    "event_type": "METRICS_ACCESS_DENIED",
                    "client_ip": request.client.host if request.client else "unknown",
                },
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid metrics token",
            )

        return metrics_endpoint()

    if settings.observability_enabled:
        app.add_route("/metrics", protected_metrics)

    return app


app = create_app()
