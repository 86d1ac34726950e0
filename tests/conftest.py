"""
Shared test fixtures for the Goalpost test suite.

Provides a fakeredis server and async client for the cache client (set
``redis_server.connected = False`` to simulate an outage), connected cache
clients, and an in-memory SQLite database with a seeded user.
"""

import uuid

import fakeredis
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import Settings
from app.db.models import Base, User
from app.services.cache_service import CacheService


# ─── Settings & Cache ────────────────────────────────────────


def make_settings(**overrides) -> Settings:
    """Settings isolated from .env and OS env vars, tuned for fast tests."""
    defaults = {
        "cache_reconnect_base_delay_seconds": 0.01,
        "cache_reconnect_max_delay_seconds": 0.05,
        "cache_purge_on_startup": False,
        "database_create_tables": False,
        "log_format": "console",
    }
    return Settings(_env_file=None, **{**defaults, **overrides})


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


def make_fake_redis(server: fakeredis.FakeServer | None = None) -> fakeredis.FakeAsyncRedis:
    """An async client on ``server`` (a fresh one by default), decoding like production."""
    return fakeredis.FakeAsyncRedis(server=server or fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def fake_redis(redis_server) -> fakeredis.FakeAsyncRedis:
    return make_fake_redis(redis_server)


@pytest.fixture
async def cache(settings, fake_redis):
    """A connected cache client backed by fakeredis."""
    client = CacheService(settings, redis=fake_redis)
    await client.connect()
    yield client
    await client.close()


# ─── Database ────────────────────────────────────────────────


@pytest.fixture
async def engine():
    """Create an in-memory async SQLite engine for testing."""
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    # SQLite needs PRAGMA foreign_keys for FK enforcement
    @event.listens_for(eng.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng

    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


async def create_user(session: AsyncSession, username: str = "u1") -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash="not-a-real-hash",
    )
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def user(session) -> User:
    return await create_user(session, "u1")


@pytest.fixture
def user_id(user) -> uuid.UUID:
    return user.id


# ─── Services ────────────────────────────────────────────────


@pytest.fixture
def services(session, cache, settings):
    """Every domain service wired over one session and the shared cache."""
    from types import SimpleNamespace

    from app.db.repositories import (
        GoalRepository,
        RewardRepository,
        SubtaskRepository,
        UserRepository,
    )
    from app.services.analytics_service import AnalyticsService
    from app.services.goal_service import GoalService
    from app.services.reward_service import RewardService
    from app.services.subtask_service import SubtaskService
    from app.services.user_service import UserService

    goal_repo = GoalRepository(session)
    subtask_repo = SubtaskRepository(session)
    reward_repo = RewardRepository(session)
    goals = GoalService(goal_repo, subtask_repo, reward_repo, cache, settings)
    return SimpleNamespace(
        goal_repo=goal_repo,
        subtask_repo=subtask_repo,
        reward_repo=reward_repo,
        goals=goals,
        subtasks=SubtaskService(subtask_repo, goals, cache, settings),
        rewards=RewardService(reward_repo, goal_repo, goals, cache, settings),
        analytics=AnalyticsService(goal_repo, subtask_repo, cache, settings),
        users=UserService(UserRepository(session), cache, settings),
    )


# ─── API ─────────────────────────────────────────────────────


@pytest.fixture
async def app(settings, cache, session_factory):
    """The full application over SQLite and fakeredis."""
    from app.db.database import get_db
    from app.main import create_app

    application = create_app(settings=settings, cache=cache)

    async def override_get_db():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """Async HTTP client calling the app in-process (lifespan not run)."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


async def register(client, username: str = "user1") -> dict[str, str]:
    """Register a user through the API and return auth headers."""
    resp = await client.post(
        "/api/v1/auth/register",
        json={
            "username": username,
            "email": f"{username}@example.com",
            "password": "securepass123",
        },
    )
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
