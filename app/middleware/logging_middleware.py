"""
Request/response logging middleware.

Logs every API request with timing, status code, cache status and client
address. Binds a short ``request_id`` to structlog's contextvars so every
log line emitted while handling the request (cache failures included)
carries it.
"""

import logging
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.cache_status import CACHE_STATUS_HEADER

logger = logging.getLogger("goalpost.api")

# Probes hit these constantly
UNLOGGED_PATHS = frozenset({"/health"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and sets ``X-Request-ID`` / ``X-Response-Time``."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.monotonic()
        try:
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start_time) * 1000, 1)

            if request.url.path not in UNLOGGED_PATHS:
                cache_status = response.headers.get(CACHE_STATUS_HEADER, "-")
                client = request.client.host if request.client else "unknown"
                logger.info(
                    f"{request.method} {request.url.path} → {response.status_code} "
                    f"({duration_ms}ms, cache {cache_status}) [{client}]"
                )

            response.headers["X-Response-Time"] = f"{duration_ms}ms"
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            structlog.contextvars.clear_contextvars()
