"""
Content access layer: one wired instance of every primitive and orchestrator.
"""

from typing import List, Optional

from shared.background import BackgroundWriter
from shared.clock import Clock, system_clock
from shared.config import ContentSettings, get_settings
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from .adapters.http_origin import HttpOriginClient
from .adapters.kv_store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from .adapters.row_store import InMemoryRowStore, PostgresRowStore, RowStore
from .caching.batcher import RequestBatcher
from .caching.memory_cache import MemoryCache
from .caching.query_cache import QueryCache
from .caching.tiered_cache import RemoteCacheTier, TieredCache
from .content.duas import DuaService
from .content.hadith import (
    DatabaseHadithSource,
    EdgeFunctionHadithSource,
    HadithService,
    HadithSource,
    SunnahApiHadithSource,
)
from .content.quran import AlQuranCloudOrigin, QuranOrigin, QuranService
from .content.translation import (
    DeepLTranslationProvider,
    OpenAITranslationProvider,
    TranslationProvider,
    TranslationService,
)
from .monitoring.performance_monitor import PerformanceMonitor
from .ratelimit.sliding_window import SlidingWindowRateLimiter


class ContentAccessLayer:
    """Builds the layer from settings; stores and origins may be injected."""

    def __init__(
        self,
        settings: Optional[ContentSettings] = None,
        *,
        kv_store: Optional[KeyValueStore] = None,
        row_store: Optional[RowStore] = None,
        quran_origin: Optional[QuranOrigin] = None,
        hadith_sources: Optional[List[HadithSource]] = None,
        translation_providers: Optional[List[TranslationProvider]] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or system_clock
        self.metrics = metrics or get_metrics_collector(self.settings.service_name)
        self.logger = get_logger("content.main")
        self._http_clients: List[HttpOriginClient] = []

        self.kv_store = kv_store or self._build_kv_store()
        self.row_store = row_store or self._build_row_store()

        self.writer = BackgroundWriter(self.settings.background_queue_size, metrics=self.metrics)
        self.monitor = PerformanceMonitor(
            self.settings.max_metrics_per_name,
            clock=self.clock,
            metrics=self.metrics,
            enabled=self.settings.performance_enabled,
        )

        self.rate_limiter = SlidingWindowRateLimiter(clock=self.clock, metrics=self.metrics)
        for endpoint, config in self.settings.rate_limits.items():
            self.rate_limiter.register_endpoint(endpoint, config)

        remote = None
        if self.settings.remote_cache_table:
            remote = RemoteCacheTier(self.row_store, self.settings.remote_cache_table)
        self.cache = TieredCache(
            self.kv_store,
            self.writer,
            memory=MemoryCache(
                self.settings.memory_cache_max_size,
                self.settings.memory_cache_policy,
                clock=self.clock,
            ),
            remote=remote,
            default_ttl=self.settings.cache_default_ttl,
            clock=self.clock,
            metrics=self.metrics,
        )
        self.query_cache = QueryCache(self.cache, self.row_store, self.rate_limiter)
        self.batcher = RequestBatcher(
            self.settings.batch_delay_seconds,
            all_or_nothing=self.settings.batch_all_or_nothing,
            metrics=self.metrics,
        )

        self.translation = TranslationService(
            self.cache,
            self.row_store,
            self.rate_limiter,
            self.writer,
            self.batcher,
            translation_providers if translation_providers is not None else self._build_translation_providers(),
            ttl=self.settings.translation_ttl_seconds,
        )
        self.quran = QuranService(
            self.cache,
            self.rate_limiter,
            self.monitor,
            quran_origin or AlQuranCloudOrigin(self._http_client("quran-api", self.settings.quran_api_url)),
            ttl=self.settings.quran_ttl_seconds,
            retries=self.settings.retry_attempts,
            initial_delay=self.settings.retry_initial_delay,
            clock=self.clock,
            metrics=self.metrics,
        )
        self.hadith = HadithService(
            self.cache,
            self.rate_limiter,
            self.monitor,
            self.translation,
            self.writer,
            hadith_sources if hadith_sources is not None else self._build_hadith_sources(),
            row_store=self.row_store,
            ttl=self.settings.hadith_ttl_seconds,
            initial_delay=self.settings.retry_initial_delay,
            clock=self.clock,
            metrics=self.metrics,
        )
        self.duas = DuaService(
            self.cache,
            self.row_store,
            self.rate_limiter,
            self.monitor,
            ttl=self.settings.dua_ttl_seconds,
        )

    def _build_kv_store(self) -> KeyValueStore:
        if self.settings.redis_url:
            return RedisKeyValueStore(self.settings.redis_url)
        return InMemoryKeyValueStore()

    def _build_row_store(self) -> RowStore:
        if self.settings.postgres_dsn:
            return PostgresRowStore(self.settings.postgres_dsn)
        return InMemoryRowStore()

    def _http_client(self, service: str, base_url: str, headers: Optional[dict] = None) -> HttpOriginClient:
        client = HttpOriginClient(service, base_url, timeout=self.settings.http_timeout_seconds, headers=headers)
        self._http_clients.append(client)
        return client

    def _build_hadith_sources(self) -> List[HadithSource]:
        sources: List[HadithSource] = [DatabaseHadithSource(self.row_store)]
        if self.settings.sunnah_api_key:
            sources.append(SunnahApiHadithSource(self._http_client(
                "sunnah-api",
                self.settings.hadith_api_url,
                headers={"X-API-Key": self.settings.sunnah_api_key},
            )))
        if self.settings.edge_function_url:
            sources.append(EdgeFunctionHadithSource(self._http_client("edge-function", self.settings.edge_function_url)))
        return sources

    def _build_translation_providers(self) -> List[TranslationProvider]:
        providers: List[TranslationProvider] = []
        if self.settings.deepl_api_key:
            providers.append(DeepLTranslationProvider(self._http_client(
                "deepl",
                self.settings.deepl_api_url,
                headers={"Authorization": f"DeepL-Auth-Key {self.settings.deepl_api_key}"},
            )))
        if self.settings.openai_api_key:
            providers.append(OpenAITranslationProvider(
                self._http_client(
                    "openai",
                    self.settings.openai_api_url,
                    headers={"Authorization": f"Bearer {self.settings.openai_api_key}"},
                ),
                model=self.settings.openai_model,
            ))
        return providers

    async def start(self):
        """Connect stores and start the background writer."""
        configure_logging(self.settings.service_name, self.settings.log_level)
        for store in (self.kv_store, self.row_store):
            start = getattr(store, "start", None)
            if start is not None:
                await start()
        await self.writer.start()
        self.logger.info(
            "Content access layer started",
            env=self.settings.env,
            endpoints=list(self.settings.rate_limits),
        )

    async def stop(self):
        """Flush pending writes, then release connections."""
        await self.writer.stop(flush=True)
        self.rate_limiter.reset()
        for client in self._http_clients:
            await client.close()
        for store in (self.kv_store, self.row_store):
            stop = getattr(store, "stop", None)
            if stop is not None:
                await stop()
        self.monitor.log_stats()
        self.logger.info("Content access layer stopped")
