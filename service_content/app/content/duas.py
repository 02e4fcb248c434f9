"""
Dua retrieval by category with a static fallback.
"""

from typing import Any, Callable, Dict, List, Optional

from shared.config import DAY_SECONDS
from shared.errors import ContentUnavailableError
from shared.logging import get_logger, set_content_context, set_request_id
from ..adapters.row_store import RowStore
from ..caching.tiered_cache import TieredCache
from ..monitoring.performance_monitor import PerformanceMonitor
from ..ratelimit.sliding_window import SlidingWindowRateLimiter
from .fallbacks import get_fallback_duas
from .models import Dua

DUA_TABLE = "duas"
DUA_TTL = 7 * DAY_SECONDS
ROW_STORE_ENDPOINT = "supabase"


class DuaService:
    """Loads a whole category once, caches it, and pages through it locally."""

    def __init__(
        self,
        cache: TieredCache,
        row_store: RowStore,
        rate_limiter: SlidingWindowRateLimiter,
        monitor: PerformanceMonitor,
        *,
        fallback: Callable[[str], List[Dua]] = get_fallback_duas,
        ttl: float = DUA_TTL,
    ):
        self.cache = cache
        self.row_store = row_store
        self.rate_limiter = rate_limiter
        self.monitor = monitor
        self.fallback = fallback
        self.ttl = ttl
        self.logger = get_logger("content.duas")

    async def fetch_duas_by_category(self, category: str, limit: int = 20, offset: int = 0) -> List[Dua]:
        set_content_context("duas")
        set_request_id()

        async def fetch() -> List[Dict[str, Any]]:
            duas = await self._load_from_store(category)
            if not duas:
                duas = self.fallback(category)
                if duas:
                    self.logger.info("Using fallback duas", category=category, count=len(duas))
            if not duas:
                raise ContentUnavailableError("No duas available", {"category": category})
            return [dua.model_dump() for dua in duas]

        try:
            rows = await self.monitor.measure(
                "duas.category",
                lambda: self.cache.get_cached(f"dua_{category}", fetch, ttl=self.ttl),
                {"category": category},
            )
        except ContentUnavailableError:
            self.logger.info("No duas available for category", category=category)
            return []

        return [Dua.model_validate(row) for row in rows[offset:offset + limit]]

    async def _load_from_store(self, category: str) -> Optional[List[Dua]]:
        try:
            rows = await self.rate_limiter.throttle(
                ROW_STORE_ENDPOINT,
                lambda: self.row_store.select(
                    DUA_TABLE,
                    filters={"category": category},
                    order=("sort_order", True),
                ),
            )
        except Exception as e:
            self.logger.warning("Dua query failed", category=category, error=str(e))
            return None

        return [
            Dua(
                id=str(row["id"]),
                category=row.get("category") or category,
                title=row.get("title") or "",
                arabic_text=row.get("arabic_text") or "",
                english_text=row.get("english_text") or "",
                french_text=row.get("french_text") or row.get("english_text") or "",
                transliteration=row.get("transliteration") or "",
                reference=row.get("reference") or "",
                repetitions=row.get("repetitions") or 1,
            )
            for row in rows or []
        ]
