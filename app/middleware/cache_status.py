"""
Cache status middleware.

Annotates responses with ``X-Cache-Status: HIT`` or ``MISS`` so clients and
load tests can see whether a request was served from Redis.

Each request gets a fresh ``CacheStatus`` holder in a context variable. The
read-through accessor records every lookup on it; the holder is a mutable
object because Starlette runs the endpoint in a copied context, so only
mutations of a shared object are visible back in the middleware.
"""

from contextvars import ContextVar
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

CACHE_STATUS_HEADER = "X-Cache-Status"


@dataclass
class CacheStatus:
    """Hits and misses recorded during one request."""

    hits: int = 0
    misses: int = 0

    @property
    def header_value(self) -> str | None:
        """HIT only if every lookup hit; None when nothing was looked up."""
        if self.hits == 0 and self.misses == 0:
            return None
        return "MISS" if self.misses else "HIT"


_cache_status: ContextVar[CacheStatus | None] = ContextVar("cache_status", default=None)


def record_cache_lookup(hit: bool) -> None:
    """Record a lookup on the current request's holder, if any."""
    status = _cache_status.get()
    if status is None:
        return
    if hit:
        status.hits += 1
    else:
        status.misses += 1


class CacheStatusMiddleware(BaseHTTPMiddleware):
    """Sets ``X-Cache-Status`` from the lookups recorded during the request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        status = CacheStatus()
        token = _cache_status.set(status)
        try:
            response = await call_next(request)
        finally:
            _cache_status.reset(token)

        value = status.header_value
        if value is not None:
            response.headers[CACHE_STATUS_HEADER] = value
        return response
