"""
Health check with dependency probes.

Checks:
- Application: always up if responding
- Database: execute ``SELECT 1`` via async session
- Cache: ``PING`` through the cache client, plus its connection state

Returns 200 with ``"healthy"`` or ``"degraded"`` status, never 503.
The cache is optional for correctness, so a cache outage only degrades.
"""

import asyncio
import logging
import time
from datetime import UTC, datetime

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.cache_service import CacheService

logger = logging.getLogger(__name__)


async def check_database(session: AsyncSession) -> dict:
    """
    Probe database connectivity.

    Returns:
        ``{"status": "up", "latency_ms": float}`` or
        ``{"status": "down", "error": str}``
    """
    try:
        start = time.monotonic()
        await session.execute(text("SELECT 1"))
        latency = round((time.monotonic() - start) * 1000, 1)
        return {"status": "up", "latency_ms": latency}
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database health check failed: {e}")
        return {"status": "down", "error": str(e)}


async def check_cache(cache: CacheService) -> dict:
    """
    Probe the cache backend.

    Returns:
        ``{"status": "up", "state": str, "latency_ms": float}`` or
        ``{"status": "down", "state": str}``
    """
    start = time.monotonic()
    alive = await cache.health_check()
    latency = round((time.monotonic() - start) * 1000, 1)
    if not alive:
        logger.warning(f"Cache health check failed (state={cache.state})")
        return {"status": "down", "state": cache.state.value}
    return {"status": "up", "state": cache.state.value, "latency_ms": latency}


async def get_health_status(
    app_name: str,
    app_version: str,
    app_env: str,
    db_session: AsyncSession | None = None,
    cache: CacheService | None = None,
) -> dict:
    """
    Build complete health status response.

    Runs DB and cache probes concurrently. Overall status is
    ``"healthy"`` if all configured probes pass, ``"degraded"``
    if any fail.
    """
    components: dict[str, dict] = {}

    tasks: dict[str, asyncio.Task] = {}
    if db_session is not None:
        tasks["database"] = asyncio.create_task(check_database(db_session))
    if cache is not None:
        tasks["cache"] = asyncio.create_task(check_cache(cache))

    for name, task in tasks.items():
        components[name] = await task

    all_up = all(c["status"] == "up" for c in components.values())
    overall = "healthy" if (not components or all_up) else "degraded"

    return {
        "status": overall,
        "app": app_name,
        "version": app_version,
        "environment": app_env,
        "timestamp": datetime.now(UTC).isoformat(),
        "components": components,
    }
