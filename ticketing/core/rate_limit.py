"""Per-client request throttling for the API.

State is held in process memory. With several replicas each one keeps
its own windows, so the effective limit grows with the replica count.
"""

import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Keys idle for this long are dropped during the periodic sweep
_IDLE_SECONDS = 3600
_SWEEP_EVERY_SECONDS = 300


class InMemoryRateLimiter:
    """Sliding-window counter keyed by (identifier, endpoint)."""

    def __init__(self):
        self._hits: defaultdict[tuple[str, str], deque[float]] = defaultdict(deque)
        self._last_sweep = time.monotonic()

    @staticmethod
    def _trim(hits: deque[float], since: float) -> None:
        while hits and hits[0] <= since:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < _SWEEP_EVERY_SECONDS:
            return
        self._last_sweep = now

        idle = []
        for key, hits in self._hits.items():
            self._trim(hits, now - _IDLE_SECONDS)
            if not hits:
                idle.append(key)
        for key in idle:
            del self._hits[key]
        if idle:
            logger.debug("Dropped %d idle rate limit keys", len(idle))

    def is_allowed(self, identifier: str, endpoint: str, limit: int, window: int) -> bool:
        """Count this request against the window; False once the limit is reached."""
        now = time.monotonic()
        self._sweep(now)

        hits = self._hits[(identifier, endpoint)]
        self._trim(hits, now - window)
        if len(hits) >= limit:
            return False
        hits.append(now)
        return True

    def get_remaining_count(self, identifier: str, endpoint: str, limit: int, window: int) -> int:
        hits = self._hits[(identifier, endpoint)]
        self._trim(hits, time.monotonic() - window)
        return max(0, limit - len(hits))

    def reset(self) -> None:
        self._hits.clear()
        self._last_sweep = time.monotonic()


_rate_limiter = InMemoryRateLimiter()


def get_rate_limiter() -> InMemoryRateLimiter:
    return _rate_limiter


SKIP_PATHS = frozenset(
    {
        "/api/v1/health",
        "/api/v1/readyz",
        "/docs",
        "/redoc",
        "/openapi.json",
    }
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Throttle requests per user (or per IP when anonymous).

    Limits are (requests, window seconds). Exact "METHOD:/path" entries
    win over the door-scanner rule, which wins over the per-method
    default. Anything else gets 1000 requests per hour.
    """

    DEFAULT_LIMITS = {
        "POST:/api/v1/auth/login": (10, 60),
        "POST:/api/v1/auth/register": (5, 60),
        "POST:/api/v1/auth/refresh": (30, 60),
        "POST:/api/v1/orders": (20, 60),
        "GET:/api/v1/events": (300, 60),
        "GET:/api/v1/audit-log": (100, 60),
    }
    METHOD_LIMITS = {
        "POST": (100, 60),
        "GET": (500, 60),
    }
    FALLBACK_LIMIT = (1000, 3600)

    # Scanners post to /events/{event_id}/checkins
    CHECKIN_LIMIT = (600, 60)

    def __init__(self, app, limiter: InMemoryRateLimiter | None = None):
        super().__init__(app)
        self.limiter = limiter or get_rate_limiter()

    def _get_rate_limit(self, method: str, path: str) -> tuple[int, int]:
        exact = self.DEFAULT_LIMITS.get(f"{method}:{path}")
        if exact:
            return exact
        if method == "POST" and path.endswith("/checkins"):
            return self.CHECKIN_LIMIT
        return self.METHOD_LIMITS.get(method, self.FALLBACK_LIMIT)

    def _get_identifier(self, request: Request) -> str:
        user = getattr(request.state, "user", None)
        if isinstance(user, dict) and "sub" in user:
            return f"user:{user['sub']}"
        return f"ip:{request.client.host if request.client else 'unknown'}"

    def _exempt(self, request: Request) -> bool:
        from ticketing.core.config import AppEnvironment, settings

        if settings.app_env == AppEnvironment.TEST or request.url.path in SKIP_PATHS:
            return True
        # Loopback only; forwarded headers are never trusted here
        return settings.app_env == AppEnvironment.LOCAL and (
            request.client is not None and request.client.host in ("127.0.0.1", "::1")
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self._exempt(request):
            return await call_next(request)

        path = request.url.path
        limit, window = self._get_rate_limit(request.method, path)
        identifier = self._get_identifier(request)
        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Reset": str(int(time.time() + window)),
        }

        if not self.limiter.is_allowed(identifier, path, limit, window):
            logger.warning(
                "Rate limit exceeded for %s on %s %s",
                identifier,
                request.method,
                path,
                extra={"identifier": identifier, "limit": limit, "window": window},
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "RateLimitExceeded",
                    "message": "Rate limit exceeded",
                    "details": {"limit": limit, "window": window},
                },
                headers={**headers, "X-RateLimit-Remaining": "0"},
            )

        remaining = self.limiter.get_remaining_count(identifier, path, limit, window)
        response = await call_next(request)
        response.headers.update({**headers, "X-RateLimit-Remaining": str(remaining)})
        return response
