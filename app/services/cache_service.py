"""
Redis-backed cache client.

Single owner of the connection to the cache backend. Provides async
get/set/delete with JSON serialization, a per-user key registry for bulk
invalidation, a refresh-token denylist, a background purge sweep and
fail-open behavior: every operation returns a ``CacheResult`` and none of
them raise, so a Redis outage degrades latency, never correctness.

Connection lifecycle::

    DISCONNECTED ──connect()──▶ CONNECTING ──PING ok──▶ CONNECTED
         ▲                          │                       │
         └────────PING failed───────┘◀──transport error─────┘

Leaving CONNECTED starts one background reconnect loop with exponential
backoff. While the client is not CONNECTED every operation returns an
``unavailable`` result immediately instead of queuing or blocking.

The client is built once in ``create_app()``, connected in the lifespan
startup hook and closed at shutdown. Routers reach it via ``get_cache``.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.config import Settings, get_settings
from app.core.resilience import backoff_delay
from app.services.cache_keys import CacheKeys

logger = logging.getLogger(__name__)

# Errors meaning the transport is gone, as opposed to a rejected command
_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)

PURGE_CHUNK_SIZE = 500


class CacheState(StrEnum):
    """Connection states of the cache client."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class CacheErrorKind(StrEnum):
    """Why a cache operation did not complete."""
    UNAVAILABLE = "unavailable"      # Not connected; operation skipped
    TIMEOUT = "timeout"              # Exceeded the bounded delete window
    BACKEND = "backend"              # Redis rejected or dropped the command
    SERIALIZATION = "serialization"  # Value could not be (de)serialized


@dataclass(frozen=True)
class CacheError:
    """Structured description of a failed cache operation."""

    kind: CacheErrorKind
    operation: str
    key: str | None = None
    detail: str = ""


@dataclass(frozen=True)
class CacheResult:
    """
    Outcome of a cache operation.

    ``value`` carries the payload (decoded value for ``get``, count for the
    delete family, ``None`` otherwise). On failure ``error`` is set and
    ``value`` holds the degraded result (``None`` or ``0``).
    """

    value: Any = None
    error: CacheError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        kind: CacheErrorKind,
        operation: str,
        key: str | None = None,
        exc: BaseException | None = None,
        value: Any = None,
    ) -> "CacheResult":
        detail = f"{type(exc).__name__}: {exc}" if exc is not None else ""
        return cls(value=value, error=CacheError(kind, operation, key, detail))


class CacheService:
    """
    Async Redis cache with JSON serialization and fail-open behavior.

    Usage:
        cache = CacheService(settings)
        await cache.connect()
        result = await cache.get(cache.keys.goal(goal_id))
        if result.ok and result.value is not None:
            ...
        await cache.close()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        redis: Redis | None = None,
    ):
        self._settings = settings or get_settings()
        self.keys = CacheKeys(self._settings.cache_namespace, self._settings.cache_prefix)
        self._redis = redis or Redis.from_url(
            self._settings.redis_url,
            decode_responses=True,
            socket_timeout=self._settings.cache_socket_timeout_seconds,
            socket_connect_timeout=self._settings.cache_socket_timeout_seconds,
            health_check_interval=10,
        )
        self._delete_timeout = self._settings.cache_delete_timeout_seconds
        # The registry must outlive every key it tracks
        self._registry_ttl = max(
            self._settings.cache_ttl_dashboard,
            self._settings.cache_ttl_analytics,
            self._settings.cache_ttl_goal_list,
            self._settings.cache_ttl_subtask_list,
            self._settings.cache_ttl_reward_list,
            self._settings.cache_ttl_goal,
            self._settings.cache_ttl_reward,
            self._settings.cache_ttl_profile,
        )

        self._state = CacheState.DISCONNECTED
        self._closed = False
        self._reconnect_task: asyncio.Task | None = None
        self._reconnect_attempts = 0
        self._background_tasks: set[asyncio.Task] = set()
        self._purge_pending = False

    # ─── Lifecycle ───────────────────────────────────────────

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def is_available(self) -> bool:
        """True if the backend is connected and operations will be attempted."""
        return self._state == CacheState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        """Failed reconnect attempts since the connection was last up."""
        return self._reconnect_attempts

    async def connect(self, purge_stale: bool = False) -> bool:
        """
        Connect to Redis. Call once on app startup.

        Returns True if connected. On failure the client stays usable in
        degraded mode and a background reconnect loop is started.

        Args:
            purge_stale: Sweep keys of previous generations (everything under
                the prefix outside the current namespace) once the first
                connection is up, whether now or from the reconnect loop.
        """
        self._closed = False
        self._purge_pending = purge_stale
        if await self._try_connect():
            return True
        self._schedule_reconnect()
        return False

    async def close(self) -> None:
        """Stop background work and close the connection. Call once on shutdown."""
        self._closed = True
        tasks = list(self._background_tasks)
        if self._reconnect_task is not None:
            tasks.append(self._reconnect_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._reconnect_task = None

        try:
            await self._redis.aclose()
        except RedisError as e:
            logger.warning(f"Error while closing cache connection: {e}")
        self._state = CacheState.DISCONNECTED
        logger.info("Cache client closed")

    async def _try_connect(self) -> bool:
        self._state = CacheState.CONNECTING
        try:
            await self._redis.ping()
        except (*_CONNECTION_ERRORS, RedisError) as e:
            self._state = CacheState.DISCONNECTED
            logger.warning(f"Cache connection failed: {e}")
            return False
        self._state = CacheState.CONNECTED
        self._reconnect_attempts = 0
        logger.info("Cache connected", extra={"namespace": self.keys.namespace})
        if self._purge_pending:
            self._purge_pending = False
            self.scan_and_purge(
                f"{self._settings.cache_prefix}:*",
                keep_prefix=(self.keys.namespace_prefix(), self.keys.revoked_prefix()),
            )
        return True

    def _schedule_reconnect(self) -> None:
        """Start the reconnect loop unless one is already running."""
        if self._closed:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while not self._closed and self._state != CacheState.CONNECTED:
            delay = backoff_delay(
                self._reconnect_attempts,
                base_delay=self._settings.cache_reconnect_base_delay_seconds,
                max_delay=self._settings.cache_reconnect_max_delay_seconds,
            )
            logger.info(
                f"Cache reconnect attempt {self._reconnect_attempts + 1} in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
            if self._closed:
                return
            if await self._try_connect():
                return
            self._reconnect_attempts += 1

    def _connection_lost(
        self, operation: str, key: str | None, exc: BaseException
    ) -> CacheResult:
        """Drop to DISCONNECTED after a transport error and start reconnecting."""
        if self._state == CacheState.CONNECTED:
            self._state = CacheState.DISCONNECTED
            logger.error(f"Cache connection lost during {operation}: {exc}")
            self._schedule_reconnect()
        return CacheResult.failure(CacheErrorKind.UNAVAILABLE, operation, key, exc)

    @staticmethod
    def _unavailable(operation: str, key: str | None = None, value: Any = None) -> CacheResult:
        return CacheResult.failure(CacheErrorKind.UNAVAILABLE, operation, key, value=value)

    # ─── Primitives ──────────────────────────────────────────

    async def get(self, key: str) -> CacheResult:
        """
        Get a cached value by key.

        ``value`` is None on a miss. Backend and decode errors also yield
        ``value=None`` with ``error`` set, so callers can treat them as misses.
        """
        if not self.is_available:
            return self._unavailable("get", key)
        try:
            raw = await self._redis.get(key)
        except _CONNECTION_ERRORS as e:
            return self._connection_lost("get", key, e)
        except RedisError as e:
            return CacheResult.failure(CacheErrorKind.BACKEND, "get", key, e)

        if raw is None:
            return CacheResult()
        try:
            return CacheResult(value=json.loads(raw))
        except (json.JSONDecodeError, TypeError) as e:
            return CacheResult.failure(CacheErrorKind.SERIALIZATION, "get", key, e)

    async def set(self, key: str, value: Any, ttl: int) -> CacheResult:
        """
        Cache a JSON-serializable value with a TTL in seconds.

        A failed write is simply dropped; the next read will miss.
        """
        if not self.is_available:
            return self._unavailable("set", key)
        try:
            raw = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            return CacheResult.failure(CacheErrorKind.SERIALIZATION, "set", key, e)
        try:
            await self._redis.set(key, raw, ex=ttl)
        except _CONNECTION_ERRORS as e:
            return self._connection_lost("set", key, e)
        except RedisError as e:
            return CacheResult.failure(CacheErrorKind.BACKEND, "set", key, e)
        return CacheResult()

    async def delete(self, *keys: str) -> CacheResult:
        """
        Delete keys in one round trip, bounded by the delete timeout.

        ``value`` is the number of keys removed; 0 on timeout or error.
        """
        if not keys:
            return CacheResult(value=0)
        first = keys[0]
        if not self.is_available:
            return self._unavailable("delete", first, value=0)
        try:
            deleted = await asyncio.wait_for(
                self._redis.delete(*keys), timeout=self._delete_timeout
            )
        except asyncio.TimeoutError as e:
            return CacheResult.failure(CacheErrorKind.TIMEOUT, "delete", first, e, value=0)
        except _CONNECTION_ERRORS as e:
            result = self._connection_lost("delete", first, e)
            return CacheResult(value=0, error=result.error)
        except RedisError as e:
            return CacheResult.failure(CacheErrorKind.BACKEND, "delete", first, e, value=0)
        return CacheResult(value=int(deleted or 0))

    async def health_check(self) -> bool:
        """Liveness probe: True if Redis answers PING."""
        try:
            return bool(await self._redis.ping())
        except (*_CONNECTION_ERRORS, RedisError):
            return False

    # ─── Key Registries ──────────────────────────────────────

    async def track_key(self, user_id: str, key: str) -> CacheResult:
        """
        Record that ``key`` was cached on behalf of ``user_id``.

        The registry's expiry is pushed out to the longest configured TTL
        on every add, so it never expires before a key it tracks.
        """
        return await self.track_in(self.keys.user_registry(user_id), key, "track_key")

    async def invalidate_user(self, user_id: str) -> CacheResult:
        """Drop every key tracked for ``user_id`` plus the registry itself."""
        return await self.drain(self.keys.user_registry(user_id), "invalidate_user")

    async def track_in(self, registry: str, key: str, operation: str = "track") -> CacheResult:
        """Add ``key`` to an arbitrary registry set, e.g. one shared by all users."""
        if not self.is_available:
            return self._unavailable(operation, registry)
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.sadd(registry, key)
                pipe.expire(registry, self._registry_ttl)
                await pipe.execute()
        except _CONNECTION_ERRORS as e:
            return self._connection_lost(operation, registry, e)
        except RedisError as e:
            return CacheResult.failure(CacheErrorKind.BACKEND, operation, registry, e)
        return CacheResult()

    async def drain(self, registry: str, operation: str = "drain") -> CacheResult:
        """
        Drop every key tracked in ``registry`` plus the registry itself.

        Reads the registry, then UNLINKs all members and the registry in a
        single MULTI/EXEC so the registry never outlives a partial delete.
        Bounded by the delete timeout. ``value`` is the number of keys removed.
        """
        if not self.is_available:
            return self._unavailable(operation, registry, value=0)

        async def _drain() -> int:
            members = await self._redis.smembers(registry)
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.unlink(*members, registry)
                results = await pipe.execute()
            return int(results[0] or 0)

        try:
            removed = await asyncio.wait_for(_drain(), timeout=self._delete_timeout)
        except asyncio.TimeoutError as e:
            return CacheResult.failure(CacheErrorKind.TIMEOUT, operation, registry, e, value=0)
        except _CONNECTION_ERRORS as e:
            result = self._connection_lost(operation, registry, e)
            return CacheResult(value=0, error=result.error)
        except RedisError as e:
            return CacheResult.failure(CacheErrorKind.BACKEND, operation, registry, e, value=0)
        return CacheResult(value=removed)

    # ─── Token Denylist ──────────────────────────────────────

    async def deny_token(self, token_id: str, ttl: int) -> CacheResult:
        """Put a token id on the denylist until its own expiry (``ttl`` seconds)."""
        key = self.keys.revoked_token(token_id)
        if not self.is_available:
            return self._unavailable("deny_token", key)
        try:
            await self._redis.set(key, "1", ex=max(int(ttl), 1))
        except _CONNECTION_ERRORS as e:
            return self._connection_lost("deny_token", key, e)
        except RedisError as e:
            return CacheResult.failure(CacheErrorKind.BACKEND, "deny_token", key, e)
        return CacheResult()

    async def is_token_denied(self, token_id: str) -> CacheResult:
        """
        Check the denylist.

        ``value`` is True or False when the answer is known and None when
        the backend could not be asked.
        """
        key = self.keys.revoked_token(token_id)
        if not self.is_available:
            return self._unavailable("is_token_denied", key)
        try:
            found = await self._redis.exists(key)
        except _CONNECTION_ERRORS as e:
            return self._connection_lost("is_token_denied", key, e)
        except RedisError as e:
            return CacheResult.failure(CacheErrorKind.BACKEND, "is_token_denied", key, e)
        return CacheResult(value=bool(found))

    # ─── Background Sweep ────────────────────────────────────

    def scan_and_purge(
        self, pattern: str, keep_prefix: str | tuple[str, ...] | None = None
    ) -> asyncio.Task | None:
        """
        Start a background SCAN + UNLINK sweep of keys matching ``pattern``.

        Keys starting with ``keep_prefix`` (one prefix or a tuple) are spared,
        which lets the startup sweep match the whole ``<prefix>:*`` space while
        keeping the current generation and the token denylist. Returns
        immediately with the sweep task, or None when the backend is
        unavailable. Errors inside the sweep are logged and swallowed.
        """
        if not self.is_available:
            logger.info(f"Cache purge of {pattern!r} skipped: backend unavailable")
            return None
        task = asyncio.create_task(self._purge(pattern, keep_prefix))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _purge(self, pattern: str, keep_prefix: str | tuple[str, ...] | None) -> int:
        deleted = 0
        chunk: list[str] = []
        try:
            async for key in self._redis.scan_iter(match=pattern, count=PURGE_CHUNK_SIZE):
                if keep_prefix and key.startswith(keep_prefix):
                    continue
                chunk.append(key)
                if len(chunk) >= PURGE_CHUNK_SIZE:
                    deleted += int(await self._redis.unlink(*chunk) or 0)
                    chunk = []
            if chunk:
                deleted += int(await self._redis.unlink(*chunk) or 0)
        except _CONNECTION_ERRORS as e:
            self._connection_lost("scan_and_purge", pattern, e)
            logger.warning(f"Cache purge of {pattern!r} aborted after {deleted} keys: {e}")
            return deleted
        except RedisError as e:
            logger.warning(f"Cache purge of {pattern!r} failed after {deleted} keys: {e}")
            return deleted
        if deleted:
            logger.info(f"Cache purge removed {deleted} keys matching {pattern!r}")
        return deleted
