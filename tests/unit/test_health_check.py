"""Tests for app.core.health — health check probes."""

from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.exc import OperationalError

from app.core.health import check_cache, check_database, get_health_status
from app.services.cache_service import CacheService
from tests.conftest import make_settings


def _db(ok: bool = True):
    session = AsyncMock()
    if ok:
        session.execute = AsyncMock(return_value=MagicMock())
    else:
        session.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("db down")))
    return session


class TestCheckDatabase:
    """Verify database connectivity probe."""

    async def test_returns_up_on_success(self):
        result = await check_database(_db())
        assert result["status"] == "up"
        assert result["latency_ms"] >= 0

    async def test_returns_down_on_failure(self):
        result = await check_database(_db(ok=False))
        assert result["status"] == "down"
        assert "db down" in result["error"]

    async def test_socket_errors_are_down(self):
        session = AsyncMock()
        session.execute = AsyncMock(side_effect=ConnectionError("connection refused"))
        result = await check_database(session)
        assert result["status"] == "down"


class TestCheckCache:
    """Verify cache probe."""

    async def test_returns_up_with_state(self, cache):
        result = await check_cache(cache)
        assert result["status"] == "up"
        assert result["state"] == "connected"
        assert result["latency_ms"] >= 0

    async def test_returns_down_when_backend_gone(self, cache, redis_server):
        redis_server.connected = False
        result = await check_cache(cache)
        assert result == {"status": "down", "state": "connected"}

    async def test_never_connected_client(self, fake_redis, redis_server):
        redis_server.connected = False
        client = CacheService(make_settings(), redis=fake_redis)
        result = await check_cache(client)
        assert result["state"] == "disconnected"


class TestGetHealthStatus:
    """Verify overall health status aggregation."""

    async def test_healthy_when_all_probes_pass(self, cache):
        result = await get_health_status(
            app_name="Goalpost",
            app_version="0.4.0",
            app_env="development",
            db_session=_db(),
            cache=cache,
        )
        assert result["status"] == "healthy"
        assert result["components"]["database"]["status"] == "up"
        assert result["components"]["cache"]["status"] == "up"

    async def test_degraded_when_db_down(self, cache):
        result = await get_health_status(
            app_name="Goalpost",
            app_version="0.4.0",
            app_env="development",
            db_session=_db(ok=False),
            cache=cache,
        )
        assert result["status"] == "degraded"
        assert result["components"]["cache"]["status"] == "up"

    async def test_degraded_when_cache_down(self, cache, redis_server):
        redis_server.connected = False
        result = await get_health_status(
            app_name="Goalpost",
            app_version="0.4.0",
            app_env="development",
            db_session=_db(),
            cache=cache,
        )
        assert result["status"] == "degraded"
        assert result["components"]["database"]["status"] == "up"
        assert result["components"]["cache"]["status"] == "down"

    async def test_healthy_when_no_probes_configured(self):
        result = await get_health_status(
            app_name="Goalpost",
            app_version="0.4.0",
            app_env="development",
        )
        assert result["status"] == "healthy"
        assert result["components"] == {}

    async def test_includes_metadata(self):
        result = await get_health_status(
            app_name="Goalpost",
            app_version="0.4.0",
            app_env="production",
        )
        assert result["app"] == "Goalpost"
        assert result["version"] == "0.4.0"
        assert result["environment"] == "production"
        assert "timestamp" in result
