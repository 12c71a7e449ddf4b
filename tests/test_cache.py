"""
Tests for MemoryCacheStore and FetchCoordinator.
"""

from __future__ import annotations

import asyncio

import pytest

from gatedfeed.cache.coordinator import FetchCoordinator
from gatedfeed.cache.store import CacheStore, MemoryCacheStore

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestMemoryCacheStore:
    """Tests for MemoryCacheStore."""

    @pytest.mark.asyncio
    async def test_set_get(self) -> None:
        store = MemoryCacheStore()

        await store.set("k", {"title": "x"}, ttl=60)

        assert await store.get("k") == {"title": "x"}
        assert await store.get("missing") is None
        assert isinstance(store, CacheStore)

    @pytest.mark.asyncio
    async def test_entries_expire(self) -> None:
        """Test that an entry is gone once its TTL has elapsed."""
        clock = FakeClock()
        store = MemoryCacheStore(clock=clock)
        await store.set("k", "v", ttl=60)

        clock.now += 59
        assert await store.get("k") == "v"
        clock.now += 2
        assert await store.get("k") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_lru_eviction(self) -> None:
        """Test that the least recently used entry is evicted first.

        Given: A store with max_entries=2 holding a and b, with a read last
        When: c is added
        Then: b is evicted
        """
        store = MemoryCacheStore(max_entries=2)
        await store.set("a", 1, ttl=60)
        await store.set("b", 2, ttl=60)
        await store.get("a")

        await store.set("c", 3, ttl=60)

        assert await store.get("b") is None
        assert await store.get("a") == 1
        assert await store.get("c") == 3

    @pytest.mark.asyncio
    async def test_prune_and_clear(self) -> None:
        clock = FakeClock()
        store = MemoryCacheStore(clock=clock)
        await store.set("short", 1, ttl=10)
        await store.set("long", 2, ttl=100)

        clock.now += 50
        assert await store.prune_expired() == 1
        assert await store.clear() == 1

    @pytest.mark.asyncio
    async def test_invalid_ttl(self) -> None:
        with pytest.raises(ValueError):
            await MemoryCacheStore().set("k", "v", ttl=0)

    @pytest.mark.asyncio
    async def test_stats(self) -> None:
        store = MemoryCacheStore()
        await store.set("k", "v", ttl=60)
        await store.get("k")
        await store.get("nope")

        stats = store.get_stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5


class TestFetchCoordinator:
    """Tests for FetchCoordinator.get_or_fetch()."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_compute_once(self) -> None:
        """Test single-flight behavior.

        Given: M=10 concurrent calls for the same key
        When: All call get_or_fetch() while the first computation is in flight
        Then: compute runs exactly once and every caller sees the same value
        """
        # Given
        coordinator: FetchCoordinator[dict] = FetchCoordinator(MemoryCacheStore(), ttl=60)
        calls = 0
        release = asyncio.Event()

        async def compute() -> dict:
            nonlocal calls
            calls += 1
            await release.wait()
            return {"link": "https://www.blocktempo.com/a/"}

        # When
        tasks = [
            asyncio.create_task(coordinator.get_or_fetch("https://www.blocktempo.com/a/", compute))
            for _ in range(10)
        ]
        await asyncio.sleep(0.01)
        assert coordinator.in_flight_count == 1
        release.set()
        results = await asyncio.gather(*tasks)

        # Then
        assert calls == 1
        assert all(r is results[0] for r in results)
        assert coordinator.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_cached_value_reused(self) -> None:
        coordinator: FetchCoordinator[str] = FetchCoordinator(MemoryCacheStore(), ttl=60)
        calls = 0

        async def compute() -> str:
            nonlocal calls
            calls += 1
            return "value"

        assert await coordinator.get_or_fetch("k", compute) == "value"
        assert await coordinator.get_or_fetch("k", compute) == "value"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_different_keys_independent(self) -> None:
        coordinator: FetchCoordinator[str] = FetchCoordinator(MemoryCacheStore(), ttl=60)

        async def make(value: str) -> str:
            await asyncio.sleep(0)
            return value

        a, b = await asyncio.gather(
            coordinator.get_or_fetch("a", lambda: make("A")),
            coordinator.get_or_fetch("b", lambda: make("B")),
        )

        assert (a, b) == ("A", "B")

    @pytest.mark.asyncio
    async def test_failure_not_cached(self) -> None:
        """Test that a failed computation is shared, then retried on the next call.

        Given: A compute that fails on its first run
        When: Two concurrent callers see the failure and a third call follows
        Then: Both concurrent callers get the error; the third call recomputes
        """
        # Given
        coordinator: FetchCoordinator[str] = FetchCoordinator(MemoryCacheStore(), ttl=60)
        calls = 0

        async def compute() -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            if calls == 1:
                raise RuntimeError("detail fetch failed")
            return "ok"

        # When
        results = await asyncio.gather(
            coordinator.get_or_fetch("k", compute),
            coordinator.get_or_fetch("k", compute),
            return_exceptions=True,
        )
        retry = await coordinator.get_or_fetch("k", compute)

        # Then
        assert all(isinstance(r, RuntimeError) for r in results)
        assert retry == "ok"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_failed_key_leaves_in_flight_immediately(self) -> None:
        """Test that a failed key is no longer in flight once its outcome is known.

        Given: A compute that schedules an observer and then fails
        When: The observer runs right after the failing step, before any waiter resumes
        Then: The key is already gone, so a caller arriving then starts a fresh attempt
        """
        # Given
        coordinator: FetchCoordinator[str] = FetchCoordinator(MemoryCacheStore(), ttl=60)
        observed: list[int] = []

        async def failing() -> str:
            asyncio.get_running_loop().call_soon(
                lambda: observed.append(coordinator.in_flight_count)
            )
            raise RuntimeError("detail fetch failed")

        async def succeeding() -> str:
            return "ok"

        # When
        with pytest.raises(RuntimeError):
            await coordinator.get_or_fetch("k", failing)

        # Then
        assert observed == [0]
        assert await coordinator.get_or_fetch("k", succeeding) == "ok"

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_computation(self) -> None:
        """Test that one caller giving up leaves the shared computation running."""
        coordinator: FetchCoordinator[str] = FetchCoordinator(MemoryCacheStore(), ttl=60)
        release = asyncio.Event()

        async def compute() -> str:
            await release.wait()
            return "done"

        impatient = asyncio.create_task(coordinator.get_or_fetch("k", compute))
        patient = asyncio.create_task(coordinator.get_or_fetch("k", compute))
        await asyncio.sleep(0.01)
        impatient.cancel()
        release.set()

        assert await patient == "done"
        assert impatient.cancelled()

    def test_invalid_ttl(self) -> None:
        with pytest.raises(ValueError):
            FetchCoordinator(MemoryCacheStore(), ttl=0)
