"""
Content data models shared by the orchestrators.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SourceType(str, Enum):
    """Kinds of text that can be translated."""
    QURAN = "quran"
    HADITH = "hadith"
    GENERAL = "general"


class QuranVerse(BaseModel):
    """A single ayah with optional translations."""
    number: int
    number_in_surah: int
    text: str
    english_text: Optional[str] = None
    french_text: Optional[str] = None


class SurahData(BaseModel):
    """A surah with its verses merged across editions."""
    number: int
    name: str
    arabic_name: str
    english_name: str
    number_of_verses: int
    revelation_type: str
    verses: List[QuranVerse] = Field(default_factory=list)


class Hadith(BaseModel):
    hadith_number: str
    arabic_text: str = ""
    english_text: str = ""
    french_text: str = ""
    reference: str = ""
    book: str = ""
    chapter: str = ""


class Dua(BaseModel):
    id: str
    category: str
    title: str = ""
    arabic_text: str
    english_text: str = ""
    french_text: str = ""
    transliteration: str = ""
    reference: str = ""
    repetitions: int = 1


class TranslationRequest(BaseModel):
    """One item of a batched translation."""
    text: str
    source_type: SourceType = SourceType.GENERAL
    source_id: str
    target_language: str = "fr"
