"""
Single-flight fetch coordination.

Concurrent requests for the same key share one in-flight computation.
Successful results are written to the cache store; failures are not, so
the next request retries.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from gatedfeed.cache.store import CacheStore
from gatedfeed.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class FetchCoordinator(Generic[T]):
    """Cache-aside loader with at most one in-flight computation per key.

    Example:
        coordinator = FetchCoordinator(MemoryCacheStore(), ttl=3600)
        item = await coordinator.get_or_fetch(link, lambda: load_item(link))
    """

    def __init__(self, store: CacheStore, ttl: float):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._store = store
        self._ttl = ttl
        self._in_flight: dict[str, asyncio.Future[T]] = {}
        self._computations = 0

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def get_or_fetch(self, key: str, compute: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for key, computing it at most once concurrently.

        Args:
            key: Cache key.
            compute: Zero-argument coroutine function producing the value.

        Returns:
            Cached or freshly computed value.

        Raises:
            Exception: Whatever compute raised; shared by all concurrent waiters.
        """
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, compute))
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.debug("Joining in-flight fetch", key=key)

        # A cancelled waiter must not cancel the shared computation
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Future[T]) -> None:
        # Backstop for a task cancelled before _load ran
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Fetch failed, not cached", key=key, error=str(task.exception()))

    async def _load(self, key: str, compute: Callable[[], Awaitable[T]]) -> T:
        try:
            cached = await self._store.get(key)
            if cached is not None:
                logger.debug("Cache hit", key=key)
                return cached

            self._computations += 1
            value = await compute()
            await self._store.set(key, value, self._ttl)
            return value
        finally:
            # Leave the in-flight map as soon as the outcome is known, so a
            # caller arriving after a failure starts a fresh attempt
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    def get_stats(self) -> dict[str, Any]:
        return {
            "in_flight": len(self._in_flight),
            "computations": self._computations,
            "ttl": self._ttl,
        }
