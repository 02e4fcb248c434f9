"""
Test helpers and factory methods for the content access layer.
"""

import asyncio
from typing import Any, Dict, List, Optional


class FakeClock:
    """Manually advanced clock; ``sleep`` records the delay and advances time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.mono = 0.0
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    def monotonic(self) -> float:
        return self.mono

    def advance(self, seconds: float):
        self.now += seconds
        self.mono += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        # Still yield so other tasks can run.
        await asyncio.sleep(0)


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def create_surah_payload(
        number: int = 1,
        edition: str = "quran-uthmani",
        verses: int = 3,
    ) -> Dict[str, Any]:
        """Surah ``data`` object as returned by an alquran.cloud style API."""
        return {
            "number": number,
            "name": f"سورة {number}",
            "englishName": f"Surah {number}",
            "numberOfAyahs": verses,
            "revelationType": "Meccan",
            "edition": {"identifier": edition},
            "ayahs": [
                {"number": index + 1, "numberInSurah": index + 1, "text": f"{edition} verse {index + 1}"}
                for index in range(verses)
            ],
        }

    @staticmethod
    def create_hadith_items(collection_id: str = "bukhari", count: int = 2) -> List[Dict[str, Any]]:
        """Hadith items in the sunnah.com API shape."""
        return [
            {
                "hadithNumber": str(index + 1),
                "hadithArabic": f"arabic {index + 1}",
                "hadithEnglish": f"english {index + 1}",
                "bookSlug": collection_id,
                "englishChapter": "Revelation",
            }
            for index in range(count)
        ]

    @staticmethod
    def create_dua_rows(category: str = "morning", count: int = 3) -> List[Dict[str, Any]]:
        """Rows of the ``duas`` table, deliberately out of ``sort_order``."""
        rows = [
            {
                "id": f"{category}-{index}",
                "category": category,
                "title": f"Dua {index}",
                "arabic_text": f"arabic {index}",
                "english_text": f"english {index}",
                "french_text": None,
                "sort_order": index,
            }
            for index in range(count)
        ]
        return list(reversed(rows))


class FakeQuranOrigin:
    """Quran origin returning factory payloads and counting calls per edition."""

    def __init__(self, verses: int = 3, failures: Optional[Dict[str, int]] = None):
        self.verses = verses
        self.failures = dict(failures or {})
        self.calls: List[str] = []

    async def fetch_surah(self, surah_number: int, edition: str) -> Dict[str, Any]:
        self.calls.append(edition)
        if self.failures.get(edition, 0) > 0:
            self.failures[edition] -= 1
            raise ConnectionError(f"{edition} unavailable")
        return TestDataFactory.create_surah_payload(surah_number, edition, self.verses)
