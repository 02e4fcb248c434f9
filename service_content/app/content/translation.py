"""
Text translation with a stored-translation table and a provider fallback chain.
"""

import asyncio
from typing import List, Optional, Protocol, Union

from shared.background import BackgroundWriter
from shared.config import DAY_SECONDS
from shared.errors import ContentUnavailableError, ExternalServiceError
from shared.logging import get_logger
from ..adapters.http_origin import HttpOriginClient
from ..adapters.row_store import RowStore
from ..caching.batcher import RequestBatcher
from ..caching.tiered_cache import TieredCache
from ..ratelimit.sliding_window import SlidingWindowRateLimiter
from .models import SourceType, TranslationRequest

TRANSLATION_TABLE = "translation_cache"
TRANSLATION_CONFLICT_KEYS = ["source_type", "source_id", "target_language"]
TRANSLATION_BATCH_KEY = "translation"
TRANSLATION_TTL = 30 * DAY_SECONDS
ROW_STORE_ENDPOINT = "supabase"


class TranslationProvider(Protocol):
    name: str
    endpoint: str

    async def translate(self, text: str, target_language: str) -> Optional[str]: ...


class DeepLTranslationProvider:
    name = "deepl"
    endpoint = "edge-function"

    def __init__(self, client: HttpOriginClient, source_language: str = "EN"):
        self.client = client
        self.source_language = source_language

    async def translate(self, text: str, target_language: str) -> Optional[str]:
        result = await self.client.post_json(
            "/translate",
            {"text": [text], "target_lang": target_language.upper(), "source_lang": self.source_language},
        )
        translations = (result or {}).get("translations") or []
        return translations[0].get("text") if translations else None


class OpenAITranslationProvider:
    name = "openai"
    endpoint = "openai"

    def __init__(self, client: HttpOriginClient, model: str = "gpt-4o-mini"):
        self.client = client
        self.model = model

    async def translate(self, text: str, target_language: str) -> Optional[str]:
        result = await self.client.post_json(
            "/chat/completions",
            {
                "model": self.model,
                "messages": [
                    {
                        "role": "system",
                        "content": (
                            f"Translate the user's text into the language with code '{target_language}'. "
                            "Reply with the translation only."
                        ),
                    },
                    {"role": "user", "content": text},
                ],
                "temperature": 0.3,
                "max_tokens": 2000,
            },
        )
        try:
            return result["choices"][0]["message"]["content"].strip()
        except (TypeError, KeyError, IndexError) as e:
            raise ExternalServiceError(service=self.name, message="Malformed completion response") from e


class TranslationService:
    """Translates text through cache, stored translations, then providers in order.

    A total failure returns the source text unchanged and caches nothing.
    """

    def __init__(
        self,
        cache: TieredCache,
        row_store: RowStore,
        rate_limiter: SlidingWindowRateLimiter,
        writer: BackgroundWriter,
        batcher: RequestBatcher,
        providers: List[TranslationProvider],
        *,
        ttl: float = TRANSLATION_TTL,
    ):
        self.cache = cache
        self.row_store = row_store
        self.rate_limiter = rate_limiter
        self.writer = writer
        self.batcher = batcher
        self.providers = providers
        self.ttl = ttl
        self.logger = get_logger("content.translation")

    async def translate(
        self,
        text: str,
        source_type: Union[SourceType, str],
        source_id: str,
        target_language: str = "fr",
    ) -> str:
        source_type = SourceType(source_type).value
        key = f"translation_{source_type}_{source_id}_{target_language}"

        async def fetch() -> str:
            stored = await self._lookup_stored(source_type, source_id, target_language)
            if stored:
                return stored

            for provider in self.providers:
                try:
                    translation = await self.rate_limiter.throttle(
                        provider.endpoint,
                        lambda p=provider: p.translate(text, target_language),
                    )
                except Exception as e:
                    self.logger.warning(
                        "Translation provider failed",
                        provider=provider.name,
                        source_id=source_id,
                        error=str(e)
                    )
                    continue

                if translation:
                    self._store(source_type, source_id, target_language, text, translation, provider.name)
                    return translation

            raise ContentUnavailableError(
                "No translation provider succeeded",
                {"source_type": source_type, "source_id": source_id, "target_language": target_language}
            )

        try:
            return await self.cache.get_cached(key, fetch, ttl=self.ttl)
        except ContentUnavailableError:
            self.logger.info("Returning untranslated text", source_type=source_type, source_id=source_id)
            return text

    async def translate_batch(self, items: List[TranslationRequest]) -> List[str]:
        """Translate several items in one debounced batch; results keep input order."""
        return list(await asyncio.gather(*(
            self.batcher.batch_query(
                TRANSLATION_BATCH_KEY,
                lambda item=item: self.translate(item.text, item.source_type, item.source_id, item.target_language),
            )
            for item in items
        )))

    async def _lookup_stored(self, source_type: str, source_id: str, target_language: str) -> Optional[str]:
        try:
            rows = await self.rate_limiter.throttle(
                ROW_STORE_ENDPOINT,
                lambda: self.row_store.select(
                    TRANSLATION_TABLE,
                    filters={
                        "source_type": source_type,
                        "source_id": source_id,
                        "target_language": target_language,
                    },
                    limit=1,
                ),
            )
        except Exception as e:
            self.logger.warning("Stored translation lookup failed", source_id=source_id, error=str(e))
            return None
        return rows[0].get("translated_text") if rows else None

    def _store(
        self,
        source_type: str,
        source_id: str,
        target_language: str,
        original: str,
        translation: str,
        provider: str,
    ):
        row = {
            "source_type": source_type,
            "source_id": source_id,
            "target_language": target_language,
            "source_text": original,
            "translated_text": translation,
            "translation_provider": provider,
        }
        self.writer.submit(
            f"translation_store:{source_type}_{source_id}",
            lambda: self.row_store.upsert(TRANSLATION_TABLE, row, conflict_keys=TRANSLATION_CONFLICT_KEYS),
        )
