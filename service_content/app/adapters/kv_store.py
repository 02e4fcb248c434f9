"""
Persistent key-value stores backing the second cache tier.
"""

from typing import Dict, List, Optional, Protocol

import redis.asyncio as redis

from shared.errors import StorageError
from shared.logging import get_logger


class KeyValueStore(Protocol):
    """String key/value store; values are caller-serialized JSON."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def remove_many(self, keys: List[str]) -> None: ...

    async def keys(self) -> List[str]: ...


class InMemoryKeyValueStore:
    """Process-local store, used when no Redis URL is configured and in tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def remove_many(self, keys: List[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def keys(self) -> List[str]:
        return list(self._data.keys())

    def __len__(self) -> int:
        return len(self._data)


class RedisKeyValueStore:
    """Redis-backed store; every key lives under ``namespace``."""

    def __init__(self, redis_url: str, namespace: str = "content:"):
        self.redis_url = redis_url
        self.namespace = namespace
        self.logger = get_logger("content.kv_store.redis")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def start(self):
        """Open the connection and verify it."""
        try:
            client = await self._get_redis()
            await client.ping()
            self.logger.info("Redis key-value store started")
        except Exception as e:
            self.logger.error("Failed to start Redis key-value store", error=str(e))
            raise StorageError("redis", str(e))

    async def stop(self):
        """Close the connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis key-value store stopped")

    async def get(self, key: str) -> Optional[str]:
        try:
            client = await self._get_redis()
            return await client.get(self._make_key(key))
        except Exception as e:
            raise StorageError("redis", f"get failed for {key}: {e}")

    async def set(self, key: str, value: str) -> None:
        try:
            client = await self._get_redis()
            await client.set(self._make_key(key), value)
        except Exception as e:
            raise StorageError("redis", f"set failed for {key}: {e}")

    async def remove(self, key: str) -> None:
        try:
            client = await self._get_redis()
            await client.delete(self._make_key(key))
        except Exception as e:
            raise StorageError("redis", f"remove failed for {key}: {e}")

    async def remove_many(self, keys: List[str]) -> None:
        if not keys:
            return
        try:
            client = await self._get_redis()
            await client.delete(*[self._make_key(key) for key in keys])
        except Exception as e:
            raise StorageError("redis", f"remove_many failed: {e}")

    async def keys(self) -> List[str]:
        try:
            client = await self._get_redis()
            prefix_length = len(self.namespace)
            return [key[prefix_length:] async for key in client.scan_iter(match=f"{self.namespace}*")]
        except Exception as e:
            raise StorageError("redis", f"keys failed: {e}")
