"""
Content-fetch orchestrators composed from the caching and rate-limiting primitives.
"""

from .duas import DuaService
from .hadith import HadithService
from .quran import QuranService
from .translation import TranslationService

__all__ = ["DuaService", "HadithService", "QuranService", "TranslationService"]
