"""
Key-value cache stores with per-entry TTL.

The store is only a place to keep values; single-flight loading lives in
FetchCoordinator.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from gatedfeed.utils.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class CacheStore(Protocol):
    """Async key-value store with TTL semantics."""

    async def get(self, key: str) -> Any | None:
        """Return the live value for key, or None."""
        ...

    async def set(self, key: str, value: Any, ttl: float) -> None:
        """Store value under key for ttl seconds."""
        ...


@dataclass
class CacheEntry:
    """Cached value with expiry."""

    value: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float | None = None) -> bool:
        """Check if cache entry has expired."""
        return (now if now is not None else time.monotonic()) > self.stored_at + self.ttl


class MemoryCacheStore:
    """In-process store with TTL expiry and LRU eviction.

    Example:
        store = MemoryCacheStore(max_entries=512)
        await store.set("https://example.com/a", item, ttl=3600)
        item = await store.get("https://example.com/a")
    """

    def __init__(self, max_entries: int = 1024, clock: Any = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        async with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock(), ttl=ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache entry evicted", key=evicted)

    async def clear(self) -> int:
        """Clear the store.

        Returns:
            Number of entries cleared.
        """
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    async def prune_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries pruned.
        """
        async with self._lock:
            now = self._clock()
            expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired_keys:
                del self._entries[key]
            return len(expired_keys)

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict[str, Any]:
        return {
            "entries": len(self._entries),
            "max_entries": self._max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / max(1, self._hits + self._misses),
        }
