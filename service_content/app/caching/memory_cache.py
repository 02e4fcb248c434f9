"""
Bounded in-process cache map (first tier).
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Generic, Literal, Optional, TypeVar

from shared.clock import Clock, system_clock
from shared.errors import ValidationError

T = TypeVar("T")

EvictionPolicy = Literal["fifo", "lru"]


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with its write time and time-to-live (seconds)."""
    data: T
    timestamp: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp < self.ttl


class MemoryCache:
    """Capacity-bounded key → CacheEntry map.

    ``fifo`` evicts the oldest-inserted key regardless of use; ``lru`` moves a
    key to the back on every hit and evicts the least recently used one.
    Expired entries are removed on the lookup that finds them.
    """

    def __init__(self, max_size: int = 100, policy: EvictionPolicy = "lru", *, clock: Optional[Clock] = None):
        if max_size < 1:
            raise ValidationError("Memory cache size must be at least 1", {"max_size": max_size})
        if policy not in ("fifo", "lru"):
            raise ValidationError(f"Unknown eviction policy: {policy}", {"policy": policy})
        self.max_size = max_size
        self.policy = policy
        self.clock = clock or system_clock
        self._entries: "OrderedDict[str, CacheEntry[Any]]" = OrderedDict()

    def get(self, key: str) -> Optional[CacheEntry[Any]]:
        """Return the live entry for ``key`` or None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self.clock.time()):
            del self._entries[key]
            return None
        if self.policy == "lru":
            self._entries.move_to_end(key)
        return entry

    def set(self, key: str, data: Any, ttl: float, timestamp: Optional[float] = None) -> Optional[str]:
        """Store ``data``; returns the evicted key, if any."""
        evicted = None
        if key in self._entries:
            # Re-insertion counts as newest under both policies.
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)

        self._entries[key] = CacheEntry(
            data=data,
            timestamp=self.clock.time() if timestamp is None else timestamp,
            ttl=ttl,
        )
        return evicted

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self):
        self._entries.clear()

    def keys(self):
        return list(self._entries.keys())

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
