"""
Observability for the Ticketing API.

Provides:
- Structured JSON logging with correlation IDs
- Request correlation ID (request_id) generation and propagation
- Prometheus metrics (HTTP, DB, ticketing domain)
- Request tracking middleware for latency and status codes

Usage:
    from ticketing.core.observability import metrics, db_metrics

    metrics.tickets_issued_total.labels(region=get_region()).inc(3)
"""

import json
import logging
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from fastapi import Request, Response
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

# ============================================================================
# Context Variables for Request Tracking
# ============================================================================

_request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
_user_id_ctx: ContextVar[str] = ContextVar("user_id", default="")
_region_ctx: ContextVar[str] = ContextVar("region", default="")


def generate_request_id() -> str:
    return str(uuid.uuid4())


def get_request_id() -> str:
    return _request_id_ctx.get()


def set_correlation_id(request_id: str) -> None:
    _request_id_ctx.set(request_id)


def get_user_id() -> str:
    return _user_id_ctx.get()


def set_user_id(user_id: str) -> None:
    _user_id_ctx.set(user_id)


def get_region() -> str:
    return _region_ctx.get()


def set_region(region: str) -> None:
    _region_ctx.set(region)


# ============================================================================
# Structured Logging Configuration
# ============================================================================

# Attributes every LogRecord carries; anything else came from `extra=`.
_RESERVED_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Every line carries timestamp, level, logger and message, plus the
    request_id / user_id / region context and the OpenTelemetry trace
    context when a span is active. Fields passed through ``extra=`` are
    nested under ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_entry["request_id"] = request_id

        from ticketing.core.telemetry import get_span_id, get_trace_id

        trace_id = get_trace_id()
        if trace_id:
            log_entry["trace_id"] = trace_id
            log_entry["span_id"] = get_span_id()

        user_id = get_user_id()
        if user_id:
            log_entry["user_id"] = user_id

        region = get_region()
        if region:
            log_entry["region"] = region

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["file"] = record.pathname
        log_entry["line"] = record.lineno
        log_entry["function"] = record.funcName

        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_ATTRS
        }
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str = "INFO") -> None:
    """
    Configure root logger with structured JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Custom registry to avoid conflicts with other Prometheus metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Centralized metrics collection for the application.

    Metrics groups:
    - HTTP: Request rate, errors, latency
    - Database: Query timing
    - Ticketing: Orders, ticket issuance, check-ins, transfers, publishing
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry

        # -------------------------------------------------------------------
        # HTTP Metrics
        # -------------------------------------------------------------------

        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "route", "status_code", "region"],
            registry=self.registry,
        )

        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "route", "region"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry,
        )

        self.http_requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method", "route", "region"],
            registry=self.registry,
        )

        self.http_errors_total = Counter(
            "http_errors_total",
            "Total HTTP errors",
            ["error_type", "method", "route", "region"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Database Metrics
        # -------------------------------------------------------------------

        self.db_query_duration_seconds = Histogram(
            "db_query_duration_seconds",
            "Database query duration in seconds",
            ["operation", "region"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self.registry,
        )

        self.db_queries_total = Counter(
            "db_queries_total",
            "Total database queries",
            ["operation", "status", "region"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Ticketing Metrics
        # -------------------------------------------------------------------

        self.orders_total = Counter(
            "ticketing_orders_total",
            "Orders by resulting status",
            ["status", "region"],
            registry=self.registry,
        )

        self.order_value_cents = Histogram(
            "ticketing_order_value_cents",
            "Order totals in minor currency units",
            ["currency", "region"],
            buckets=(0, 1000, 5000, 10000, 50000, 100000, 500000, 1000000, 5000000),
            registry=self.registry,
        )

        self.tickets_issued_total = Counter(
            "ticketing_tickets_issued_total",
            "Tickets issued",
            ["region"],
            registry=self.registry,
        )

        self.checkins_total = Counter(
            "ticketing_checkins_total",
            "Check-in attempts by result",
            ["result", "region"],
            registry=self.registry,
        )

        self.transfers_total = Counter(
            "ticketing_transfers_total",
            "Ticket transfer actions",
            ["action", "region"],
            registry=self.registry,
        )

        self.drafts_published_total = Counter(
            "ticketing_drafts_published_total",
            "Draft publish attempts by outcome",
            ["outcome", "region"],
            registry=self.registry,
        )


metrics = Metrics(_registry)


def region_label() -> str:
    """Region label for metrics; 'unknown' outside a request."""
    return get_region() or "unknown"


# ============================================================================
# Middleware
# ============================================================================


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Per-request correlation, HTTP metrics and an access log line.

    The request id is taken from the configured header when the client
    sends one and echoed back on the response. Health and metrics probes
    are counted but not logged.
    """

    def __init__(
        self,
        app: ASGIApp,
        metrics_instance: Metrics | None = None,
        skip_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.metrics = metrics_instance or metrics
        self.skip_paths = tuple(skip_paths or ("/api/v1/health", "/api/v1/readyz", "/metrics"))

    def _observe(self, request: Request, route: str, status_code: int, started: float) -> float:
        region = region_label()
        elapsed = time.perf_counter() - started
        self.metrics.http_requests_total.labels(
            method=request.method, route=route, status_code=status_code, region=region
        ).inc()
        self.metrics.http_request_duration_seconds.labels(
            method=request.method, route=route, region=region
        ).observe(elapsed)
        return round(elapsed * 1000, 2)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        from ticketing.core.config import settings

        header = settings.observability_request_id_header
        request_id = request.headers.get(header) or generate_request_id()
        set_correlation_id(request_id)
        set_region(settings.app_region)
        set_user_id("")

        route = getattr(request.scope.get("route"), "path", None) or request.url.path
        quiet = route.startswith(self.skip_paths)
        in_progress = self.metrics.http_requests_in_progress.labels(
            method=request.method, route=route, region=region_label()
        )
        request_log = logging.getLogger("ticketing.request")

        in_progress.inc()
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            latency_ms = self._observe(request, route, 500, started)
            self.metrics.http_errors_total.labels(
                error_type=type(e).__name__,
                method=request.method,
                route=route,
                region=region_label(),
            ).inc()
            request_log.error(
                "%s %s failed with %s",
                request.method,
                route,
                type(e).__name__,
                extra={"route": route, "status_code": 500, "latency_ms": latency_ms},
                exc_info=True,
            )
            raise
        finally:
            in_progress.dec()

        latency_ms = self._observe(request, route, response.status_code, started)
        response.headers[header] = request_id
        if not quiet:
            request_log.info(
                "%s %s",
                request.method,
                route,
                extra={
                    "route": route,
                    "status_code": response.status_code,
                    "latency_ms": latency_ms,
                },
            )
        return response


# ============================================================================
# Database Metrics Helper
# ============================================================================


class DBMetricsWrapper:
    """
    Track database query metrics.

    Usage in repos:
        with db_metrics.track("count_sold"):
            result = await db.execute(stmt)
    """

    def __init__(self, metrics_instance: Metrics | None = None) -> None:
        self.metrics = metrics_instance or metrics

    @contextmanager
    def track(self, operation: str) -> Iterator[None]:
        start = time.time()
        status = "success"
        region = region_label()
        try:
            yield
        except Exception:
            status = "error"
            raise
        finally:
            self.metrics.db_query_duration_seconds.labels(
                operation=operation, region=region
            ).observe(time.time() - start)
            self.metrics.db_queries_total.labels(
                operation=operation, status=status, region=region
            ).inc()


db_metrics = DBMetricsWrapper()


# ============================================================================
# Metrics Endpoint
# ============================================================================


def metrics_endpoint() -> Response:
    """Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(_registry),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


def extract_request_context(request: Request) -> dict[str, Any]:
    """Observability context for log records about a request."""
    return {
        "request_id": get_request_id(),
        "user_id": get_user_id() or "anonymous",
        "region": get_region() or "",
    }
