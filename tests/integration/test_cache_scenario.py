"""
End-to-end cache behaviour through the HTTP API.

A user with one goal and one subtask reads the goal twice, completes the
subtask, then reads again; list queries and Redis outages are checked the
same way. Everything runs in-process against SQLite and fakeredis.
"""

import pytest

from tests.conftest import register

API = "/api/v1"


@pytest.fixture
async def auth(client) -> dict[str, str]:
    return await register(client, "user1")


@pytest.fixture
async def goal(client, auth) -> dict:
    resp = await client.post(f"{API}/goals", json={"title": "Learn Rust"}, headers=auth)
    return resp.json()


@pytest.fixture
async def subtask(client, auth, goal) -> dict:
    resp = await client.post(
        f"{API}/goals/{goal['id']}/subtasks", json={"title": "Read the book"}, headers=auth
    )
    return resp.json()


class TestGoalReadThrough:
    async def test_subtask_completion_reaches_cached_goal(self, client, auth, goal, subtask):
        goal_url = f"{API}/goals/{goal['id']}"

        first = await client.get(goal_url, headers=auth)
        second = await client.get(goal_url, headers=auth)
        assert first.headers["X-Cache-Status"] == "MISS"
        assert second.headers["X-Cache-Status"] == "HIT"
        assert second.json()["progress"] == 0.0

        patched = await client.patch(
            f"{goal_url}/subtasks/{subtask['id']}", json={"status": "completed"}, headers=auth
        )
        assert patched.status_code == 200

        third = await client.get(goal_url, headers=auth)
        assert third.headers["X-Cache-Status"] == "MISS"
        assert third.json()["progress"] == 100.0

    async def test_list_entries_dropped_by_write(self, client, auth, goal):
        params = {"status": "active", "sort": "title", "order": "asc"}

        await client.get(f"{API}/goals", params=params, headers=auth)
        cached = await client.get(f"{API}/goals", params=params, headers=auth)
        assert cached.headers["X-Cache-Status"] == "HIT"

        await client.post(f"{API}/goals", json={"title": "Another"}, headers=auth)
        fresh = await client.get(f"{API}/goals", params=params, headers=auth)

        assert fresh.headers["X-Cache-Status"] == "MISS"
        assert fresh.json()["total"] == 2

    async def test_equivalent_queries_share_an_entry(self, client, auth, goal):
        await client.get(f"{API}/goals", params={"page": 1, "limit": 10}, headers=auth)
        same = await client.get(f"{API}/goals", params={"limit": 10, "page": 1}, headers=auth)
        assert same.headers["X-Cache-Status"] == "HIT"

    async def test_users_do_not_share_entries(self, client, auth, goal):
        await client.get(f"{API}/goals", headers=auth)
        other = await register(client, "user2")

        resp = await client.get(f"{API}/goals", headers=other)

        assert resp.headers["X-Cache-Status"] == "MISS"
        assert resp.json()["total"] == 0

    async def test_delete_drops_cached_goal(self, client, auth, goal):
        goal_url = f"{API}/goals/{goal['id']}"
        await client.get(goal_url, headers=auth)

        await client.delete(goal_url, headers=auth)

        assert (await client.get(goal_url, headers=auth)).status_code == 404


class TestRegistry:
    async def test_user_registry_tracks_list_entries(self, client, auth, goal, cache, fake_redis):
        await client.get(f"{API}/goals", headers=auth)
        user_id = goal["user_id"]
        registry = cache.keys.user_registry(user_id)

        assert await fake_redis.scard(registry) == 1
        assert await fake_redis.ttl(registry) == 1800

        await client.put(f"{API}/goals/{goal['id']}", json={"title": "Learn Go"}, headers=auth)

        assert not await fake_redis.exists(registry)


class TestDegradedMode:
    async def test_requests_succeed_while_redis_is_down(self, client, auth, goal, redis_server):
        redis_server.connected = False
        goal_url = f"{API}/goals/{goal['id']}"

        first = await client.get(goal_url, headers=auth)
        second = await client.get(goal_url, headers=auth)
        updated = await client.put(goal_url, json={"title": "Learn Zig"}, headers=auth)

        assert first.status_code == second.status_code == 200
        assert second.headers["X-Cache-Status"] == "MISS"
        assert updated.json()["title"] == "Learn Zig"

    async def test_health_reports_degraded_cache(self, client, redis_server):
        redis_server.connected = False
        resp = await client.get("/health")
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["components"]["cache"]["status"] == "down"
        assert body["components"]["database"]["status"] == "up"
