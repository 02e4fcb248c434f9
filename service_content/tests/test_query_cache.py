"""
Unit tests for cached row-store queries.
"""

from unittest.mock import patch

import pytest
import pytest_asyncio

from service_content.app.adapters.kv_store import InMemoryKeyValueStore
from service_content.app.adapters.row_store import InMemoryRowStore
from service_content.app.caching.query_cache import QueryCache, QueryDescriptor, QueryOrder
from service_content.app.caching.tiered_cache import TieredCache
from service_content.app.ratelimit.sliding_window import SlidingWindowRateLimiter
from shared.background import BackgroundWriter
from shared.config import RateLimitConfig
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeClock


class TestQueryDescriptor:

    def test_cache_key_ignores_filter_order(self):
        first = QueryDescriptor(table="duas", filters={"category": "morning", "lang": "fr"})
        second = QueryDescriptor(table="duas", filters={"lang": "fr", "category": "morning"})

        assert first.cache_key() == second.cache_key()

    def test_cache_key_covers_every_field(self):
        base = QueryDescriptor(table="duas", limit=10)

        assert base.cache_key() != base.model_copy(update={"offset": 10}).cache_key()
        assert base.cache_key() != base.model_copy(update={"order": QueryOrder(column="id")}).cache_key()

    def test_columns(self):
        assert QueryDescriptor(table="t").columns() is None
        assert QueryDescriptor(table="t", select="id, title").columns() == ["id", "title"]


class TestQueryCache:
    """Test cases for QueryCache."""

    @pytest.fixture
    def row_store(self):
        return InMemoryRowStore({
            "duas": [
                {"id": 2, "category": "morning", "title": "b", "sort_order": 2},
                {"id": 1, "category": "morning", "title": "a", "sort_order": 1},
                {"id": 3, "category": "evening", "title": "Sleep well", "sort_order": 1},
            ]
        })

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("test-content")

    @pytest_asyncio.fixture
    async def writer(self):
        writer = BackgroundWriter()
        yield writer
        await writer.stop()

    @pytest.fixture
    def query_cache(self, row_store, writer, metrics):
        rate_limiter = SlidingWindowRateLimiter(metrics=metrics)
        rate_limiter.register_endpoint("supabase", RateLimitConfig(max_requests=50, window_seconds=1.0))
        cache = TieredCache(InMemoryKeyValueStore(), writer, clock=FakeClock())
        return QueryCache(cache, row_store, rate_limiter)

    @pytest.mark.asyncio
    async def test_identical_queries_hit_store_once(self, query_cache, row_store, metrics):
        query = QueryDescriptor(
            table="duas",
            select="id,title",
            filters={"category": "morning"},
            order=QueryOrder(column="sort_order"),
        )

        with patch.object(row_store, "select", wraps=row_store.select) as select:
            first = await query_cache.query_with_cache(query)
            second = await query_cache.query_with_cache(QueryDescriptor(**query.model_dump()))

        assert first == second == [{"id": 1, "title": "a"}, {"id": 2, "title": "b"}]
        select.assert_awaited_once()
        assert metrics.sample("rate_limit_admissions_total", endpoint="supabase", outcome="immediate") == 1.0

    @pytest.mark.asyncio
    async def test_different_pages_are_cached_separately(self, query_cache):
        page = QueryDescriptor(table="duas", order=QueryOrder(column="id"), limit=1)

        first = await query_cache.query_with_cache(page)
        second = await query_cache.query_with_cache(page.model_copy(update={"offset": 1}))

        assert [row["id"] for row in first] == [1]
        assert [row["id"] for row in second] == [2]

    @pytest.mark.asyncio
    async def test_full_text_search(self, query_cache, row_store):
        with patch.object(row_store, "search", wraps=row_store.search) as search:
            rows = await query_cache.full_text_search("duas", "title", "sleep")
            again = await query_cache.full_text_search("duas", "title", "sleep")

        assert [row["id"] for row in rows] == [3]
        assert again == rows
        search.assert_awaited_once()
