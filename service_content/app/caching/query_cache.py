"""
Cached row-store queries keyed by their full description.
"""

import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from shared.logging import get_logger
from ..adapters.row_store import Row, RowStore
from ..ratelimit.sliding_window import SlidingWindowRateLimiter
from .tiered_cache import TieredCache

ROW_STORE_ENDPOINT = "supabase"


class QueryOrder(BaseModel):
    column: str
    ascending: bool = True


class QueryDescriptor(BaseModel):
    """Everything that determines a row-store query's result."""

    table: str
    select: str = "*"
    filters: Dict[str, Any] = Field(default_factory=dict)
    order: Optional[QueryOrder] = None
    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)

    def cache_key(self) -> str:
        """Deterministic key: canonical JSON of the whole descriptor."""
        return json.dumps(self.model_dump(), sort_keys=True, default=str)

    def columns(self) -> Optional[List[str]]:
        if self.select.strip() == "*":
            return None
        return [column.strip() for column in self.select.split(",") if column.strip()]


class SearchDescriptor(BaseModel):
    table: str
    column: str
    search_term: str
    language: Literal["english", "french", "arabic"] = "english"
    limit: int = Field(default=50, ge=1)

    def cache_key(self) -> str:
        return json.dumps({"search": self.model_dump()}, sort_keys=True)


class QueryCache:
    """Row-store reads routed through the tiered cache and the row-store quota."""

    def __init__(
        self,
        cache: TieredCache,
        row_store: RowStore,
        rate_limiter: SlidingWindowRateLimiter,
        endpoint: str = ROW_STORE_ENDPOINT,
    ):
        self.cache = cache
        self.row_store = row_store
        self.rate_limiter = rate_limiter
        self.endpoint = endpoint
        self.logger = get_logger("content.query_cache")

    async def query_with_cache(
        self,
        query: QueryDescriptor,
        ttl: Optional[float] = None,
        use_memory_cache: bool = True,
    ) -> List[Row]:
        async def fetch() -> List[Row]:
            order = (query.order.column, query.order.ascending) if query.order else None
            rows = await self.rate_limiter.throttle(
                self.endpoint,
                lambda: self.row_store.select(
                    query.table,
                    filters=query.filters,
                    columns=query.columns(),
                    order=order,
                    limit=query.limit,
                    offset=query.offset,
                ),
            )
            return rows or []

        return await self.cache.get_cached(query.cache_key(), fetch, ttl=ttl, use_memory_cache=use_memory_cache)

    async def full_text_search(
        self,
        table: str,
        column: str,
        search_term: str,
        language: Literal["english", "french", "arabic"] = "english",
        limit: int = 50,
        ttl: Optional[float] = None,
    ) -> List[Row]:
        search = SearchDescriptor(
            table=table,
            column=column,
            search_term=search_term,
            language=language,
            limit=limit,
        )

        async def fetch() -> List[Row]:
            self.logger.debug("Running full-text search", table=table, column=column)
            rows = await self.rate_limiter.throttle(
                self.endpoint,
                lambda: self.row_store.search(table, column, search_term, language=language, limit=limit),
            )
            return rows or []

        return await self.cache.get_cached(search.cache_key(), fetch, ttl=ttl)
