"""
Quran surah retrieval across editions.
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol

from shared.clock import Clock, system_clock
from shared.config import DAY_SECONDS
from shared.errors import ExternalServiceError, ValidationError
from shared.logging import get_logger, set_content_context, set_request_id
from shared.metrics import MetricsCollector
from shared.retry import retry_with_backoff
from ..adapters.http_origin import HttpOriginClient
from ..caching.tiered_cache import TieredCache
from ..monitoring.performance_monitor import PerformanceMonitor
from ..ratelimit.sliding_window import SlidingWindowRateLimiter
from .models import QuranVerse, SurahData

QURAN_ENDPOINT = "quran-api"
ARABIC_EDITION = "quran-uthmani"
ENGLISH_EDITION = "en.asad"
FRENCH_EDITION = "fr.hamidullah"
SURAH_COUNT = 114
QURAN_TTL = 30 * DAY_SECONDS


class QuranOrigin(Protocol):
    async def fetch_surah(self, surah_number: int, edition: str) -> Dict[str, Any]: ...


class AlQuranCloudOrigin:
    """Surah editions from an alquran.cloud compatible API."""

    def __init__(self, client: HttpOriginClient):
        self.client = client

    async def fetch_surah(self, surah_number: int, edition: str) -> Dict[str, Any]:
        result = await self.client.get_json(f"/surah/{surah_number}/{edition}")
        if not result or result.get("code") != 200 or not result.get("data"):
            raise ExternalServiceError(
                service=self.client.service,
                message="Invalid API response",
                details={"surah": surah_number, "edition": edition}
            )
        return result["data"]


class QuranService:
    """Fetches surahs edition by edition, each cached and throttled separately."""

    def __init__(
        self,
        cache: TieredCache,
        rate_limiter: SlidingWindowRateLimiter,
        monitor: PerformanceMonitor,
        origin: QuranOrigin,
        *,
        ttl: float = QURAN_TTL,
        retries: int = 3,
        initial_delay: float = 1.0,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.monitor = monitor
        self.origin = origin
        self.ttl = ttl
        self.retries = retries
        self.initial_delay = initial_delay
        self.clock = clock or system_clock
        self.metrics = metrics
        self.logger = get_logger("content.quran")

    async def get_surah_verses(
        self,
        surah_number: int,
        include_english: bool = True,
        include_french: bool = True,
    ) -> SurahData:
        if not 1 <= surah_number <= SURAH_COUNT:
            raise ValidationError(
                f"Surah number must be between 1 and {SURAH_COUNT}",
                {"surah_number": surah_number}
            )
        set_content_context("quran")
        set_request_id()

        async def load() -> SurahData:
            editions = [ARABIC_EDITION]
            if include_english:
                editions.append(ENGLISH_EDITION)
            if include_french:
                editions.append(FRENCH_EDITION)

            payloads = await asyncio.gather(*(self._get_edition(surah_number, edition) for edition in editions))
            by_edition = dict(zip(editions, payloads))
            return self._merge(
                by_edition[ARABIC_EDITION],
                by_edition.get(ENGLISH_EDITION),
                by_edition.get(FRENCH_EDITION),
            )

        return await self.monitor.measure("quran.surah", load, {"surah": surah_number})

    async def _get_edition(self, surah_number: int, edition: str) -> Dict[str, Any]:
        async def fetch() -> Dict[str, Any]:
            self.logger.info("Fetching surah edition", surah=surah_number, edition=edition)
            return await self.rate_limiter.throttle(
                QURAN_ENDPOINT,
                lambda: retry_with_backoff(
                    lambda: self.origin.fetch_surah(surah_number, edition),
                    retries=self.retries,
                    initial_delay=self.initial_delay,
                    clock=self.clock,
                    metrics=self.metrics,
                    name="quran.fetch_surah",
                ),
            )

        return await self.cache.get_cached(f"surah_{surah_number}_{edition}", fetch, ttl=self.ttl)

    @staticmethod
    def _merge(
        arabic: Dict[str, Any],
        english: Optional[Dict[str, Any]],
        french: Optional[Dict[str, Any]],
    ) -> SurahData:
        verses: List[QuranVerse] = [
            QuranVerse(number=ayah["number"], number_in_surah=ayah["numberInSurah"], text=ayah["text"])
            for ayah in arabic.get("ayahs", [])
        ]
        # Translations are aligned to the Arabic verses by position.
        if english is not None:
            for verse, ayah in zip(verses, english.get("ayahs", [])):
                verse.english_text = ayah.get("text")
        if french is not None:
            for verse, ayah in zip(verses, french.get("ayahs", [])):
                verse.french_text = ayah.get("text")

        return SurahData(
            number=arabic["number"],
            name=arabic.get("name", ""),
            arabic_name=arabic.get("name", ""),
            english_name=arabic.get("englishName", ""),
            number_of_verses=arabic.get("numberOfAyahs", len(verses)),
            revelation_type=arabic.get("revelationType", ""),
            verses=verses,
        )
