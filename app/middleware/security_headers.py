"""
Security headers middleware.

Adds standard security headers to every HTTP response. API responses are
per-user and served from a server-side cache, so they are marked
``private, no-store`` to keep shared proxies and browsers from caching
them a second time. HSTS is only sent in production.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from app.config import get_settings

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": "frame-ancestors 'none'",
}

HSTS_VALUE = "max-age=63072000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds ``SECURITY_HEADERS`` to every response, HSTS when ``hsts`` is on
    (defaults to production), and ``Cache-Control`` for API and health paths.
    """

    def __init__(self, app: ASGIApp, hsts: bool | None = None):
        super().__init__(app)
        self._hsts = get_settings().is_production if hsts is None else hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers.update(SECURITY_HEADERS)
        if self._hsts:
            response.headers["Strict-Transport-Security"] = HSTS_VALUE

        path = request.url.path
        if path.startswith("/api/") or path == "/health":
            response.headers["Cache-Control"] = "private, no-store"

        return response
