"""
Hadith retrieval over an ordered chain of sources.
"""

import hashlib
from typing import Any, Dict, List, Optional, Protocol, Tuple

from shared.background import BackgroundWriter
from shared.clock import Clock, system_clock
from shared.config import DAY_SECONDS
from shared.errors import ContentUnavailableError, ExternalServiceError
from shared.logging import get_logger, set_content_context, set_request_id
from shared.metrics import MetricsCollector
from shared.retry import retry_with_backoff
from ..adapters.http_origin import HttpOriginClient
from ..adapters.row_store import Row, RowStore
from ..caching.tiered_cache import TieredCache
from ..monitoring.performance_monitor import PerformanceMonitor
from ..ratelimit.sliding_window import SlidingWindowRateLimiter
from .models import Hadith, SourceType, TranslationRequest
from .translation import TranslationService

HADITH_TABLE = "hadiths"
HADITH_CONFLICT_KEYS = ["collection_id", "book_number", "hadith_number"]
HADITH_TTL = 7 * DAY_SECONDS
SUNNAH_COM_URL = "https://sunnah.com"


def sunnah_com_url(collection_id: str, book_number: Optional[int] = None) -> str:
    if book_number:
        return f"{SUNNAH_COM_URL}/{collection_id}/{book_number}"
    return f"{SUNNAH_COM_URL}/{collection_id}"


class HadithSource(Protocol):
    name: str
    endpoint: str
    retries: int

    async def fetch(self, collection_id: str, book_number: Optional[int]) -> List[Hadith]: ...


class DatabaseHadithSource:
    """Hadiths previously stored in the shared row store."""

    name = "database"
    endpoint = "supabase"
    retries = 0

    def __init__(self, row_store: RowStore):
        self.row_store = row_store

    async def fetch(self, collection_id: str, book_number: Optional[int]) -> List[Hadith]:
        filters: Dict[str, Any] = {"collection_id": collection_id}
        if book_number is not None:
            filters["book_number"] = book_number
        rows = await self.row_store.select(
            HADITH_TABLE,
            filters=filters,
            order=("hadith_number_in_book", True),
        )
        return [
            Hadith(
                hadith_number=str(row.get("hadith_number", "")),
                arabic_text=row.get("arabic_text") or "",
                english_text=row.get("english_text") or "",
                french_text=row.get("french_text") or "",
                reference=row.get("reference") or "",
                book=row.get("book_title") or "",
                chapter=row.get("chapter_title") or "",
            )
            for row in rows
        ]


class SunnahApiHadithSource:
    """The sunnah.com REST API."""

    name = "sunnah-api"
    endpoint = "sunnah-api"
    retries = 3

    def __init__(self, client: HttpOriginClient):
        self.client = client

    async def fetch(self, collection_id: str, book_number: Optional[int]) -> List[Hadith]:
        if book_number:
            path = f"/collections/{collection_id}/books/{book_number}/hadiths"
        else:
            path = f"/collections/{collection_id}/hadiths"
        result = await self.client.get_json(path)
        items = (result or {}).get("data") or []
        return [
            Hadith(
                hadith_number=str(item.get("hadithNumber") or f"{book_number or 1}-{index + 1}"),
                arabic_text=item.get("hadithArabic") or "",
                english_text=item.get("hadithEnglish") or "",
                reference=f"{collection_id} {item.get('hadithNumber') or ''}".strip(),
                book=item.get("bookSlug") or f"Book {book_number or ''}".strip(),
                chapter=item.get("englishChapter") or "",
            )
            for index, item in enumerate(items)
        ]


class EdgeFunctionHadithSource:
    """Scraper edge function; slowest source, tried last."""

    name = "edge-function"
    endpoint = "edge-function"
    retries = 1

    def __init__(self, client: HttpOriginClient):
        self.client = client

    async def fetch(self, collection_id: str, book_number: Optional[int]) -> List[Hadith]:
        result = await self.client.post_json(
            "/sunnah-translator",
            {"url": sunnah_com_url(collection_id, book_number)},
        )
        if result and result.get("error"):
            raise ExternalServiceError(service=self.name, message=str(result["error"]))
        return [Hadith.model_validate(item) for item in (result or {}).get("hadiths") or []]


class HadithService:
    """Fetches a collection or book from the first source that returns hadiths."""

    def __init__(
        self,
        cache: TieredCache,
        rate_limiter: SlidingWindowRateLimiter,
        monitor: PerformanceMonitor,
        translation: TranslationService,
        writer: BackgroundWriter,
        sources: List[HadithSource],
        *,
        row_store: Optional[RowStore] = None,
        ttl: float = HADITH_TTL,
        initial_delay: float = 1.0,
        target_language: str = "fr",
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.monitor = monitor
        self.translation = translation
        self.writer = writer
        self.sources = sources
        self.row_store = row_store
        self.ttl = ttl
        self.initial_delay = initial_delay
        self.target_language = target_language
        self.clock = clock or system_clock
        self.metrics = metrics
        self.logger = get_logger("content.hadith")

    async def get_book_hadiths(self, collection_id: str, book_number: Optional[int] = None) -> List[Hadith]:
        set_content_context("hadith")
        set_request_id()
        key = f"hadith_{collection_id}_{book_number if book_number is not None else 'all'}"

        async def fetch() -> List[Dict[str, Any]]:
            source_name, hadiths = await self._fetch_from_sources(collection_id, book_number)
            hadiths = await self._translate(collection_id, hadiths)
            if source_name != DatabaseHadithSource.name:
                self._persist(collection_id, book_number, hadiths)
            return [hadith.model_dump() for hadith in hadiths]

        rows = await self.monitor.measure(
            "hadith.book",
            lambda: self.cache.get_cached(key, fetch, ttl=self.ttl),
            {"collection": collection_id, "book": book_number},
        )
        return [Hadith.model_validate(row) for row in rows]

    async def _fetch_from_sources(
        self, collection_id: str, book_number: Optional[int]
    ) -> Tuple[str, List[Hadith]]:
        last_error: Optional[Exception] = None
        for source in self.sources:
            try:
                hadiths = await self.rate_limiter.throttle(
                    source.endpoint,
                    lambda s=source: retry_with_backoff(
                        lambda: s.fetch(collection_id, book_number),
                        retries=s.retries,
                        initial_delay=self.initial_delay,
                        clock=self.clock,
                        metrics=self.metrics,
                        name=f"hadith.{s.name}",
                    ),
                )
            except Exception as e:
                last_error = e
                self.logger.warning(
                    "Hadith source failed",
                    source=source.name,
                    collection=collection_id,
                    book=book_number,
                    error=str(e)
                )
                continue

            if hadiths:
                self.logger.info("Hadiths fetched", source=source.name, collection=collection_id, count=len(hadiths))
                return source.name, hadiths

        raise ContentUnavailableError(
            "No hadith source returned content",
            {
                "collection": collection_id,
                "book": book_number,
                "last_error": str(last_error) if last_error else None,
            }
        )

    @staticmethod
    def translation_source_id(collection_id: str, hadith: Hadith) -> str:
        """Stable id for a hadith's translation; distinct texts never share one."""
        digest = hashlib.md5(hadith.english_text.encode()).hexdigest()[:12]
        return f"{collection_id}_{hadith.hadith_number}_{digest}"

    async def _translate(self, collection_id: str, hadiths: List[Hadith]) -> List[Hadith]:
        pending = [
            hadith for hadith in hadiths
            if hadith.english_text and (not hadith.french_text or hadith.french_text == hadith.english_text)
        ]
        if not pending:
            return hadiths

        requests = [
            TranslationRequest(
                text=hadith.english_text,
                source_type=SourceType.HADITH,
                source_id=self.translation_source_id(collection_id, hadith),
                target_language=self.target_language,
            )
            for hadith in pending
        ]
        try:
            translations = await self.translation.translate_batch(requests)
        except Exception as e:
            self.logger.warning("Hadith translation failed, keeping source text", count=len(pending), error=str(e))
            return hadiths

        for hadith, translated in zip(pending, translations):
            if translated != hadith.english_text:
                hadith.french_text = translated
        return hadiths

    def _persist(self, collection_id: str, book_number: Optional[int], hadiths: List[Hadith]):
        if self.row_store is None or book_number is None:
            return

        rows: List[Row] = [
            {
                "collection_id": collection_id,
                "book_number": book_number,
                "hadith_number": hadith.hadith_number,
                "hadith_number_in_book": index + 1,
                "arabic_text": hadith.arabic_text,
                "english_text": hadith.english_text,
                "french_text": hadith.french_text,
                "reference": hadith.reference,
                "book_title": hadith.book,
                "chapter_title": hadith.chapter,
            }
            for index, hadith in enumerate(hadiths)
        ]

        async def write():
            for row in rows:
                await self.row_store.upsert(HADITH_TABLE, row, conflict_keys=HADITH_CONFLICT_KEYS)

        self.writer.submit(f"hadith_store:{collection_id}_{book_number}", write)
