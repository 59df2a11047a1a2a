"""
OpenTelemetry distributed tracing for the Ticketing API.

Automatic instrumentation for:
- FastAPI (HTTP requests/responses)
- SQLAlchemy (database queries)
- HTTPX (outbound HTTP calls)

Configuration comes from settings (OTEL_ENABLED, OTEL_SERVICE_NAME,
OTEL_EXPORTER_OTLP_ENDPOINT, OTEL_EXPORTER_OTLP_HEADERS,
OTEL_TRACES_SAMPLER, OTEL_TRACES_SAMPLER_ARG).
"""

import logging
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import (
    ALWAYS_OFF,
    ALWAYS_ON,
    ParentBased,
    Sampler,
    TraceIdRatioBased,
)

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None


def _parse_headers(headers_string: str | None) -> dict[str, str]:
    """
    Parse OTLP headers from "key1=value1,key2=value2".

    Pairs without "=" are ignored.
    """
    if not headers_string:
        return {}

    headers = {}
    for pair in headers_string.split(","):
        pair = pair.strip()
        if "=" in pair:
            key, value = pair.split("=", 1)
            headers[key.strip()] = value.strip()
    return headers


def _build_sampler(name: str, ratio: float) -> Sampler:
    if name == "always_on":
        return ALWAYS_ON
    if name == "always_off":
        return ALWAYS_OFF
    if name == "traceidratio":
        return TraceIdRatioBased(ratio)
    # parent_trace_always
    return ParentBased(root=TraceIdRatioBased(ratio))


def init_telemetry(
    service_name: str | None = None,
    app_env: str | None = None,
    app_region: str | None = None,
    otlp_endpoint: str | None = None,
    otlp_headers: str | None = None,
    sampler_name: str | None = None,
    sampler_arg: float | None = None,
) -> TracerProvider | None:
    """
    Initialize the tracer provider with an OTLP gRPC exporter.

    Arguments default to the matching settings. Returns None when tracing
    is disabled or the provider could not be created.
    """
    global _tracer_provider

    from ticketing.core.config import settings

    if not settings.otel_enabled:
        logger.info("OpenTelemetry tracing is disabled (OTEL_ENABLED=false)")
        return None

    service_name = service_name or settings.otel_service_name
    app_env = app_env or settings.app_env.value
    app_region = app_region or settings.app_region
    otlp_endpoint = otlp_endpoint or settings.otel_exporter_otlp_endpoint
    otlp_headers = otlp_headers or settings.otel_exporter_otlp_headers
    sampler_name = sampler_name or settings.otel_traces_sampler
    sampler_arg = sampler_arg if sampler_arg is not None else settings.otel_traces_sampler_arg

    try:
        resource = Resource.create(
            {
                SERVICE_NAME: service_name,
                DEPLOYMENT_ENVIRONMENT: app_env,
                "app.region": app_region,
                "service.version": "0.1.0",
            }
        )
        tracer_provider = TracerProvider(
            resource=resource, sampler=_build_sampler(sampler_name, sampler_arg)
        )
        tracer_provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(endpoint=otlp_endpoint, headers=_parse_headers(otlp_headers))
            )
        )
        trace.set_tracer_provider(tracer_provider)
        _tracer_provider = tracer_provider

        logger.info(
            "OpenTelemetry initialized: service=%s environment=%s region=%s endpoint=%s",
            service_name,
            app_env,
            app_region,
            otlp_endpoint,
        )
        return tracer_provider

    except Exception as e:
        logger.error(f"Failed to initialize OpenTelemetry: {e}", exc_info=True)
        return None


def instrument_fastapi(app: Any) -> None:
    from ticketing.core.config import settings

    if not settings.otel_enabled:
        logger.debug("OpenTelemetry disabled - skipping FastAPI instrumentation")
        return

    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumentation enabled")
    except Exception as e:
        logger.error(f"Failed to instrument FastAPI: {e}", exc_info=True)


def instrument_sqlalchemy(engine: Any) -> None:
    """Instrument a SQLAlchemy engine (sync engine of an AsyncEngine)."""
    from ticketing.core.config import settings

    if not settings.otel_enabled:
        logger.debug("OpenTelemetry disabled - skipping SQLAlchemy instrumentation")
        return

    try:
        SQLAlchemyInstrumentor().instrument(engine=engine, enable_commenter=True)
        logger.info("SQLAlchemy instrumentation enabled")
    except Exception as e:
        logger.error(f"Failed to instrument SQLAlchemy: {e}", exc_info=True)


def instrument_httpx() -> None:
    from ticketing.core.config import settings

    if not settings.otel_enabled:
        logger.debug("OpenTelemetry disabled - skipping HTTPX instrumentation")
        return

    try:
        HTTPXClientInstrumentor().instrument()
        logger.info("HTTPX instrumentation enabled")
    except Exception as e:
        logger.error(f"Failed to instrument HTTPX: {e}", exc_info=True)


def shutdown_telemetry() -> None:
    """Flush pending spans and shut the tracer provider down."""
    global _tracer_provider

    if _tracer_provider is None:
        return

    try:
        _tracer_provider.shutdown()
        logger.info("OpenTelemetry shutdown complete")
    except Exception as e:
        logger.error(f"Error during OpenTelemetry shutdown: {e}", exc_info=True)
    finally:
        _tracer_provider = None


def _current_span_context() -> trace.SpanContext | None:
    span = trace.get_current_span()
    if not span.is_recording():
        return None
    ctx = span.get_span_context()
    return ctx if ctx.is_valid else None


def get_trace_id() -> str | None:
    """Current trace ID as a 32-char hex string, or None without an active span."""
    ctx = _current_span_context()
    return format(ctx.trace_id, "032x") if ctx else None


def get_span_id() -> str | None:
    """Current span ID as a 16-char hex string, or None without an active span."""
    ctx = _current_span_context()
    return format(ctx.span_id, "016x") if ctx else None
