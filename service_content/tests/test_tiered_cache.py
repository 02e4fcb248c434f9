"""
Unit tests for the read-through tiered cache.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from service_content.app.adapters.kv_store import InMemoryKeyValueStore
from service_content.app.adapters.row_store import InMemoryRowStore
from service_content.app.caching.memory_cache import CacheEntry, MemoryCache
from service_content.app.caching.tiered_cache import (
    DISK_CACHE_PREFIX,
    RemoteCacheTier,
    TieredCache,
    _encode_entry,
)
from shared.background import BackgroundWriter
from shared.errors import StorageError
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeClock


class TestTieredCache:
    """Test cases for TieredCache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def kv_store(self):
        return InMemoryKeyValueStore()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("test-content")

    @pytest_asyncio.fixture
    async def writer(self):
        writer = BackgroundWriter()
        yield writer
        await writer.stop()

    @pytest.fixture
    def cache(self, kv_store, writer, clock, metrics):
        return TieredCache(kv_store, writer, clock=clock, metrics=metrics)

    @pytest.mark.asyncio
    async def test_fetch_once_within_ttl(self, cache, clock):
        """Repeated reads inside the TTL hit the origin once."""
        fetch = AsyncMock(return_value={"surah": 1})

        first = await cache.get_cached("surah_1", fetch, ttl=100)
        clock.advance(50)
        second = await cache.get_cached("surah_1", fetch, ttl=100)

        assert first == second == {"surah": 1}
        fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refetch_after_ttl(self, cache, clock, writer):
        fetch = AsyncMock(side_effect=[{"v": 1}, {"v": 2}])

        await cache.get_cached("k", fetch, ttl=100)
        await writer.flush()
        clock.advance(100)
        result = await cache.get_cached("k", fetch, ttl=100)

        assert result == {"v": 2}
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_origin_result_written_to_persistent_store(self, cache, kv_store, writer, clock):
        await cache.get_cached("k", AsyncMock(return_value=[1, 2]), ttl=30)
        await writer.flush()

        stored = json.loads(await kv_store.get(f"{DISK_CACHE_PREFIX}k"))
        assert stored == {"data": [1, 2], "timestamp": clock.time(), "ttl": 30}

    @pytest.mark.asyncio
    async def test_persistent_hit_promotes_with_original_timestamp(self, kv_store, writer, clock, metrics):
        written_at = clock.time() - 40
        await kv_store.set(
            f"{DISK_CACHE_PREFIX}k",
            _encode_entry(CacheEntry(data="cached", timestamp=written_at, ttl=100)),
        )
        cache = TieredCache(kv_store, writer, clock=clock, metrics=metrics)
        fetch = AsyncMock(return_value="fresh")

        result = await cache.get_cached("k", fetch, ttl=100)

        assert result == "cached"
        fetch.assert_not_awaited()
        assert cache.memory.get("k").timestamp == written_at
        assert metrics.sample("cache_hits_total", tier="persistent") == 1.0

        # The promoted entry still expires relative to its original write.
        clock.advance(61)
        assert cache.memory.get("k") is None

    @pytest.mark.asyncio
    async def test_expired_persistent_entry_is_replaced(self, cache, kv_store, writer, clock):
        await kv_store.set(
            f"{DISK_CACHE_PREFIX}k",
            _encode_entry(CacheEntry(data="stale", timestamp=clock.time() - 200, ttl=100)),
        )

        result = await cache.get_cached("k", AsyncMock(return_value="fresh"), ttl=100)
        await writer.flush()

        assert result == "fresh"
        assert json.loads(await kv_store.get(f"{DISK_CACHE_PREFIX}k"))["data"] == "fresh"

    @pytest.mark.asyncio
    async def test_corrupt_persistent_entry_is_a_miss(self, cache, kv_store):
        await kv_store.set(f"{DISK_CACHE_PREFIX}k", "{not json")
        fetch = AsyncMock(return_value="fresh")

        assert await cache.get_cached("k", fetch) == "fresh"
        fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_store_errors_degrade_to_origin(self, writer, clock):
        failing_store = AsyncMock()
        failing_store.get.side_effect = StorageError("redis", "connection refused")
        failing_store.set.side_effect = StorageError("redis", "connection refused")
        cache = TieredCache(failing_store, writer, clock=clock)

        result = await cache.get_cached("k", AsyncMock(return_value="fresh"))
        await writer.flush()

        assert result == "fresh"
        assert writer.stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_remote_tier_promotes_into_local_tiers(self, kv_store, writer, clock):
        row_store = InMemoryRowStore()
        remote = RemoteCacheTier(row_store)
        written_at = clock.time() - 10
        await remote.set("k", CacheEntry(data={"shared": True}, timestamp=written_at, ttl=100))
        cache = TieredCache(kv_store, writer, remote=remote, clock=clock)
        fetch = AsyncMock()

        with patch.object(row_store, "select", wraps=row_store.select) as select:
            result = await cache.get_cached("k", fetch, ttl=100)
            await writer.flush()
            assert select.await_count == 1

            # Memory, then the persistent tier, now answer without the remote store.
            assert await cache.get_cached("k", fetch, ttl=100) == {"shared": True}
            cache.memory.clear()
            assert await cache.get_cached("k", fetch, ttl=100) == {"shared": True}
            assert select.await_count == 1

        assert result == {"shared": True}
        fetch.assert_not_awaited()
        assert cache.memory.get("k").timestamp == written_at
        persisted = json.loads(await kv_store.get(f"{DISK_CACHE_PREFIX}k"))
        assert persisted["timestamp"] == written_at

    @pytest.mark.asyncio
    async def test_origin_result_written_to_remote_tier(self, kv_store, writer, clock):
        row_store = InMemoryRowStore()
        cache = TieredCache(kv_store, writer, remote=RemoteCacheTier(row_store), clock=clock)

        await cache.get_cached("k", AsyncMock(return_value="fresh"), ttl=100)
        await writer.flush()

        rows = await row_store.select("query_cache", {"cache_key": "k"})
        assert rows[0]["expires_at"] == clock.time() + 100
        assert json.loads(rows[0]["payload"]) == "fresh"

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_fetch(self, cache):
        release = asyncio.Event()
        calls = []

        async def fetch():
            calls.append(1)
            await release.wait()
            return "shared"

        first = asyncio.create_task(cache.get_cached("k", fetch))
        second = asyncio.create_task(cache.get_cached("k", fetch))
        await asyncio.sleep(0)
        release.set()

        assert await asyncio.gather(first, second) == ["shared", "shared"]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_fetch_error_propagates_and_is_not_cached(self, cache):
        with pytest.raises(ConnectionError):
            await cache.get_cached("k", AsyncMock(side_effect=ConnectionError("down")))

        assert await cache.get_cached("k", AsyncMock(return_value="ok")) == "ok"

    @pytest.mark.asyncio
    async def test_bypassing_memory_tier(self, cache, writer):
        await cache.get_cached("k", AsyncMock(return_value="v"), use_memory_cache=False)
        await writer.flush()

        assert cache.get_memory_cache_size() == 0
        assert await cache.get_disk_cache_size() == 1

    @pytest.mark.asyncio
    async def test_clear_cache(self, cache, kv_store, writer):
        await kv_store.set("unrelated", "x")
        for key in ("a", "b"):
            await cache.get_cached(key, AsyncMock(return_value=key))
        await writer.flush()

        await cache.clear_cache("a")
        assert await cache.get_disk_cache_size() == 1
        assert "a" not in cache.memory

        await cache.clear_cache()
        assert cache.get_memory_cache_size() == 0
        assert await cache.get_disk_cache_size() == 0
        assert await kv_store.get("unrelated") == "x"

    @pytest.mark.asyncio
    async def test_memory_hits_are_counted(self, cache, metrics):
        await cache.get_cached("k", AsyncMock(return_value="v"))
        await cache.get_cached("k", AsyncMock(return_value="v"))

        assert metrics.sample("cache_misses_total", tier="origin") == 1.0
        assert metrics.sample("cache_hits_total", tier="memory") == 1.0

    @pytest.mark.asyncio
    async def test_prefetch_ignores_failures(self, cache):
        await cache.prefetch([
            lambda: cache.get_cached("ok", AsyncMock(return_value=1)),
            lambda: cache.get_cached("bad", AsyncMock(side_effect=ConnectionError("down"))),
        ])

        assert "ok" in cache.memory
        assert "bad" not in cache.memory

    def test_memory_policy_is_configurable(self, kv_store, writer, clock):
        cache = TieredCache(kv_store, writer, memory=MemoryCache(5, "fifo", clock=clock), clock=clock)

        assert cache.memory.policy == "fifo"
        assert cache.memory.max_size == 5
