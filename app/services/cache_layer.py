"""
Read-through and write-path helpers built on the cache client.

Services never talk to ``CacheService`` directly for entity data:

- ``ReadThroughCache.fetch`` wraps every cached read (get → load → set).
- ``CacheInvalidator.invalidate`` runs after every committed write and drops
  the mutated entity keys plus every list key tracked for the owning user.

Both log cache failures and carry on. Store errors raised by a loader
propagate unchanged.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from app.middleware.cache_status import record_cache_lookup
from app.services.cache_service import CacheErrorKind, CacheResult, CacheService

logger = logging.getLogger(__name__)


def log_cache_failure(result: CacheResult, level: int = logging.WARNING) -> None:
    """Log a failed cache result. Unavailable results are logged at debug."""
    if result.ok:
        return
    error = result.error
    if error.kind == CacheErrorKind.UNAVAILABLE:
        level = logging.DEBUG
    logger.log(
        level,
        f"Cache {error.operation} failed ({error.kind}) for {error.key}",
        extra={"cache_error": error.kind.value, "detail": error.detail},
    )


class ReadThroughCache:
    """
    Cache-aside reads for the domain services.

    Usage:
        reader = ReadThroughCache(cache)
        goals = await reader.fetch(
            cache.keys.goals(user_id, query.cache_params()),
            lambda: self._load_goals(user_id, query),
            ttl=settings.cache_ttl_goal_list,
            track_user_id=user_id,
        )
    """

    def __init__(self, cache: CacheService):
        self._cache = cache

    @property
    def cache(self) -> CacheService:
        return self._cache

    async def fetch(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: int,
        track_user_id: str | None = None,
        shared_registry: str | None = None,
    ) -> Any:
        """
        Return the cached value for ``key`` or load, cache and return it.

        Args:
            key: Cache key from ``CacheKeys``.
            loader: Coroutine factory hitting the store; must return
                JSON-serializable data.
            ttl: Entry lifetime in seconds.
            track_user_id: For list and analytics keys, the user whose
                registry should record the key.
            shared_registry: Extra registry for keys that a write by some
                other user can stale, such as reward lists showing public
                rewards.
        """
        cached = await self._cache.get(key)
        if cached.ok and cached.value is not None:
            record_cache_lookup(hit=True)
            return cached.value
        log_cache_failure(cached)
        record_cache_lookup(hit=False)

        value = await loader()
        if value is None:
            return value

        stored = await self._cache.set(key, value, ttl)
        log_cache_failure(stored)
        if stored.ok and track_user_id is not None:
            log_cache_failure(await self._cache.track_key(track_user_id, key))
        if stored.ok and shared_registry is not None:
            log_cache_failure(await self._cache.track_in(shared_registry, key))
        return value


class CacheInvalidator:
    """
    Write-path invalidation shared by every mutating service method.

    Call only after the store write has been committed, so a concurrent
    reader that repopulates the cache sees the new data.
    """

    def __init__(self, cache: CacheService):
        self._cache = cache

    async def invalidate(
        self,
        user_id: str | None,
        *entity_keys: str,
        shared_registry: str | None = None,
    ) -> None:
        """Delete ``entity_keys``, then drain the user registry and ``shared_registry``."""
        if entity_keys:
            log_cache_failure(await self._cache.delete(*entity_keys), logging.ERROR)
        if user_id is not None:
            log_cache_failure(await self._cache.invalidate_user(user_id), logging.ERROR)
        if shared_registry is not None:
            log_cache_failure(await self._cache.drain(shared_registry), logging.ERROR)
