"""
Content caching package.

Provides the memory map, the read-through tiered cache, cached row-store
queries and the debounced request batcher.
"""

from .batcher import RequestBatcher
from .memory_cache import CacheEntry, MemoryCache
from .query_cache import QueryCache, QueryDescriptor, QueryOrder
from .tiered_cache import RemoteCacheTier, TieredCache

__all__ = [
    "CacheEntry",
    "MemoryCache",
    "QueryCache",
    "QueryDescriptor",
    "QueryOrder",
    "RemoteCacheTier",
    "RequestBatcher",
    "TieredCache",
]
