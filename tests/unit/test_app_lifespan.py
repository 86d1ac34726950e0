"""Tests for application startup and shutdown."""

from unittest.mock import patch

import fakeredis
from fastapi.testclient import TestClient

from app.main import create_app
from app.services.cache_service import CacheService, CacheState
from tests.conftest import make_fake_redis, make_settings


def _app(**overrides):
    settings = make_settings(**overrides)
    server = fakeredis.FakeServer()
    cache = CacheService(settings, redis=make_fake_redis(server))
    return create_app(settings=settings, cache=cache), cache, server


def test_connects_on_startup_and_closes_on_shutdown():
    app, cache, _ = _app()

    with patch.object(cache._redis, "aclose", wraps=cache._redis.aclose) as aclose:
        with TestClient(app) as client:
            assert cache.state == CacheState.CONNECTED
            client.get("/nope")

    assert cache.state == CacheState.DISCONNECTED
    aclose.assert_awaited_once()


def test_startup_with_redis_down_still_serves():
    app, cache, server = _app()
    server.connected = False

    with TestClient(app) as client:
        assert client.get("/nope").status_code == 404
        assert cache.state != CacheState.CONNECTED


def test_startup_purges_old_generations():
    app, cache, server = _app(cache_purge_on_startup=True)
    seed = fakeredis.FakeRedis(server=server, decode_responses=True)
    current = cache.keys.goal("g1")
    seed.set("goalpost:v0:goal:g1", "{}")
    seed.sadd("goalpost:v0:user:u1:cache-keys", "goalpost:v0:goal:g1")
    seed.set(current, "{}")
    seed.set("other-app:key", "x")

    with TestClient(app) as client:
        client.get("/nope")

    assert set(seed.keys("*")) == {current, "other-app:key"}
