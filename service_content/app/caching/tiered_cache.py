"""
Read-through tiered cache: memory → persistent store → remote rows → origin.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from shared.background import BackgroundWriter
from shared.clock import Clock, system_clock
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..adapters.kv_store import KeyValueStore
from ..adapters.row_store import RowStore
from .memory_cache import CacheEntry, MemoryCache

T = TypeVar("T")

DISK_CACHE_PREFIX = "query_cache_"
DEFAULT_TTL = 5 * 60


def _decode_entry(raw: str) -> CacheEntry[Any]:
    parsed = json.loads(raw)
    return CacheEntry(data=parsed["data"], timestamp=float(parsed["timestamp"]), ttl=float(parsed["ttl"]))


def _encode_entry(entry: CacheEntry[Any]) -> str:
    return json.dumps({"data": entry.data, "timestamp": entry.timestamp, "ttl": entry.ttl}, default=str)


class RemoteCacheTier:
    """Cache entries stored as rows in a shared table keyed by ``cache_key``."""

    def __init__(self, row_store: RowStore, table: str = "query_cache"):
        self.row_store = row_store
        self.table = table

    async def get(self, key: str) -> Optional[CacheEntry[Any]]:
        rows = await self.row_store.select(self.table, {"cache_key": key}, limit=1)
        if not rows:
            return None
        row = rows[0]
        return CacheEntry(
            data=json.loads(row["payload"]),
            timestamp=float(row["cached_at"]),
            ttl=float(row["ttl"]),
        )

    async def set(self, key: str, entry: CacheEntry[Any]) -> None:
        await self.row_store.upsert(
            self.table,
            {
                "cache_key": key,
                "payload": json.dumps(entry.data, default=str),
                "cached_at": entry.timestamp,
                "ttl": entry.ttl,
                "expires_at": entry.timestamp + entry.ttl,
            },
            conflict_keys=["cache_key"],
        )

    async def delete(self, key: str) -> None:
        await self.row_store.delete(self.table, {"cache_key": key})


class TieredCache:
    """Read-through cache with write-back promotion into faster tiers.

    Concurrent misses for one key share a single in-flight load. Store
    failures degrade to a miss on read and are only logged on write.
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        writer: BackgroundWriter,
        *,
        memory: Optional[MemoryCache] = None,
        remote: Optional[RemoteCacheTier] = None,
        default_ttl: float = DEFAULT_TTL,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.kv_store = kv_store
        self.writer = writer
        self.clock = clock or system_clock
        self.memory = memory or MemoryCache(clock=self.clock)
        self.remote = remote
        self.default_ttl = default_ttl
        self.metrics = metrics
        self.logger = get_logger("content.tiered_cache")

        self._inflight: Dict[str, asyncio.Future] = {}

    async def get_cached(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
        use_memory_cache: bool = True,
    ) -> T:
        """Return the cached value for ``key`` or load it through ``fetch``."""
        ttl = self.default_ttl if ttl is None else ttl

        if use_memory_cache:
            entry = self.memory.get(key)
            if entry is not None:
                self._record("cache_hits_total", "memory")
                return entry.data

        inflight = self._inflight.get(key)
        if inflight is not None:
            self.logger.debug("Joining in-flight load", key=key)
            return await asyncio.shield(inflight)

        load = asyncio.ensure_future(self._load(key, fetch, ttl, use_memory_cache))
        self._inflight[key] = load
        load.add_done_callback(lambda done: self._settle(key, done))
        return await asyncio.shield(load)

    def _settle(self, key: str, load: asyncio.Future):
        if self._inflight.get(key) is load:
            del self._inflight[key]
        if not load.cancelled() and load.exception() is not None:
            self.logger.debug("Cache load failed", key=key, error=str(load.exception()))

    async def _load(self, key: str, fetch: Callable[[], Awaitable[T]], ttl: float, use_memory_cache: bool) -> T:
        entry = await self._read_persistent(key)
        if entry is not None:
            if use_memory_cache:
                self.memory.set(key, entry.data, entry.ttl, timestamp=entry.timestamp)
            self._record("cache_hits_total", "persistent")
            return entry.data

        if self.remote is not None:
            entry = await self._read_remote(key)
            if entry is not None:
                if use_memory_cache:
                    self.memory.set(key, entry.data, entry.ttl, timestamp=entry.timestamp)
                self._write_persistent(key, entry)
                self._record("cache_hits_total", "remote")
                return entry.data

        self._record("cache_misses_total", "origin")
        data = await fetch()

        entry = CacheEntry(data=data, timestamp=self.clock.time(), ttl=ttl)
        if use_memory_cache:
            evicted = self.memory.set(key, data, ttl, timestamp=entry.timestamp)
            if evicted is not None:
                self.logger.debug("Evicted memory cache entry", key=evicted)
        self._write_persistent(key, entry)
        if self.remote is not None:
            self._write_remote(key, entry)
        return data

    async def _read_persistent(self, key: str) -> Optional[CacheEntry[Any]]:
        disk_key = f"{DISK_CACHE_PREFIX}{key}"
        try:
            raw = await self.kv_store.get(disk_key)
        except Exception as e:
            self.logger.error("Error reading from disk cache", key=key, error=str(e))
            return None
        if raw is None:
            return None

        try:
            entry = _decode_entry(raw)
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning("Discarding corrupt disk cache entry", key=key, error=str(e))
            self.writer.submit(f"disk_remove:{key}", lambda: self.kv_store.remove(disk_key))
            return None

        if not entry.is_valid(self.clock.time()):
            self.writer.submit(f"disk_remove:{key}", lambda: self.kv_store.remove(disk_key))
            return None
        return entry

    async def _read_remote(self, key: str) -> Optional[CacheEntry[Any]]:
        try:
            entry = await self.remote.get(key)
        except Exception as e:
            self.logger.error("Error reading from remote cache", key=key, error=str(e))
            return None
        if entry is None or not entry.is_valid(self.clock.time()):
            return None
        return entry

    def _write_persistent(self, key: str, entry: CacheEntry[Any]):
        disk_key = f"{DISK_CACHE_PREFIX}{key}"

        async def write():
            await self.kv_store.set(disk_key, _encode_entry(entry))

        self.writer.submit(f"disk_write:{key}", write)

    def _write_remote(self, key: str, entry: CacheEntry[Any]):
        self.writer.submit(f"remote_write:{key}", lambda: self.remote.set(key, entry))

    async def clear_cache(self, key: Optional[str] = None):
        """Drop one key, or every key, from the local tiers."""
        try:
            if key is not None:
                self.memory.delete(key)
                await self.kv_store.remove(f"{DISK_CACHE_PREFIX}{key}")
                return

            self.memory.clear()
            keys = [k for k in await self.kv_store.keys() if k.startswith(DISK_CACHE_PREFIX)]
            if keys:
                await self.kv_store.remove_many(keys)
            self.logger.info("Cleared cache", disk_keys=len(keys))
        except Exception as e:
            self.logger.error("Error clearing disk cache", key=key, error=str(e))

    async def prefetch(self, loaders: List[Callable[[], Awaitable[Any]]]) -> None:
        """Warm the cache; individual failures are logged and ignored."""
        results = await asyncio.gather(*(loader() for loader in loaders), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                self.logger.warning("Prefetch query failed", error=str(result))

    def get_memory_cache_size(self) -> int:
        return len(self.memory)

    async def get_disk_cache_size(self) -> int:
        try:
            return len([k for k in await self.kv_store.keys() if k.startswith(DISK_CACHE_PREFIX)])
        except Exception as e:
            self.logger.error("Error counting disk cache entries", error=str(e))
            return 0

    def _record(self, metric_name: str, tier: str):
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, tier=tier)
