"""
Security headers middleware for FastAPI.

Adds HSTS, X-Frame-Options, Content-Security-Policy, X-Content-Type-Options,
Referrer-Policy and Permissions-Policy to every response.
"""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

# Swagger UI needs a relaxed policy
DOCS_PATHS = {"/docs", "/redoc", "/openapi.json"}

API_CSP = "; ".join(
    [
        "default-src 'none'",
        "frame-ancestors 'none'",
        "base-uri 'none'",
        "form-action 'none'",
    ]
)

DOCS_CSP = "; ".join(
    [
        "default-src 'self'",
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net",
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net",
        "img-src 'self' data: https://fastapi.tiangolo.com",
        "font-src 'self' data: https://cdn.jsdelivr.net",
        "connect-src 'self'",
    ]
)

# Camera stays allowed for same-origin pages so scanner clients can read QR codes
PERMISSIONS_POLICY = ", ".join(
    [
        "geolocation=()",
        "microphone=()",
        "camera=(self)",
        "payment=()",
    ]
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers to all HTTP responses."""

    def __init__(
        self,
        app: ASGIApp,
        hsts_max_age: int = 31536000,
        include_subdomains: bool = True,
        preload: bool = False,
    ) -> None:
        super().__init__(app)
        hsts_value = f"max-age={hsts_max_age}"
        if include_subdomains:
            hsts_value += "; includeSubDomains"
        if preload:
            hsts_value += "; preload"
        self.hsts_value = hsts_value

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        is_docs_path = request.url.path in DOCS_PATHS

        response.headers["Strict-Transport-Security"] = self.hsts_value
        if not is_docs_path:
            response.headers["X-Frame-Options"] = "DENY"
        response.headers["Content-Security-Policy"] = DOCS_CSP if is_docs_path else API_CSP
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = PERMISSIONS_POLICY

        return response
