"""Security middleware for FastAPI application."""

import logging
from collections.abc import Callable

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

_TOO_LARGE_BODY = (
    '{"error":"RequestTooLarge","message":"Request body exceeds maximum allowed size"}'
)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Reject request bodies above a fixed size with 413.

    Both the Content-Length header and the actual body size are checked,
    so a missing or falsified header cannot bypass the limit.
    """

    def __init__(self, app, max_size_mb: int = 1):
        super().__init__(app)
        self.max_size_bytes = max_size_mb * 1024 * 1024

    def _too_large(self, request: Request, size: int, source: str) -> Response:
        logger.warning(
            "Request size %s bytes (%s) exceeds limit %s bytes",
            size,
            source,
            self.max_size_bytes,
            extra={"path": request.url.path},
        )
        return Response(
            content=_TOO_LARGE_BODY,
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            media_type="application/json",
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                # Verified against the actual body below
                size = 0
            if size > self.max_size_bytes:
                return self._too_large(request, size, "from header")

        if request.method in ("POST", "PUT", "PATCH"):
            # Starlette caches the body on the request, so the route can still read it
            body = await request.body()
            if len(body) > self.max_size_bytes:
                return self._too_large(request, len(body), "actual")

        return await call_next(request)
