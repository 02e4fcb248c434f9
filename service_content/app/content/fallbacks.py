"""
Static duas served when the row store has nothing for a category.
"""

from typing import Dict, List

from .models import Dua

STATIC_DUAS: Dict[str, List[Dua]] = {
    "morning": [
        Dua(
            id="fallback-morning-1",
            category="morning",
            title="Morning remembrance",
            arabic_text="أَصْبَحْنَا وَأَصْبَحَ الْمُلْكُ لِلَّهِ، وَالْحَمْدُ لِلَّهِ",
            english_text="We have entered the morning and the dominion belongs to Allah, and all praise is for Allah.",
            french_text="Nous voici au matin et la royauté appartient à Allah, et la louange est à Allah.",
            transliteration="Asbahna wa asbahal-mulku lillah, walhamdu lillah",
            reference="Muslim 2723",
        ),
    ],
    "evening": [
        Dua(
            id="fallback-evening-1",
            category="evening",
            title="Evening remembrance",
            arabic_text="أَمْسَيْنَا وَأَمْسَى الْمُلْكُ لِلَّهِ، وَالْحَمْدُ لِلَّهِ",
            english_text="We have entered the evening and the dominion belongs to Allah, and all praise is for Allah.",
            french_text="Nous voici au soir et la royauté appartient à Allah, et la louange est à Allah.",
            transliteration="Amsayna wa amsal-mulku lillah, walhamdu lillah",
            reference="Muslim 2723",
        ),
    ],
    "sleep": [
        Dua(
            id="fallback-sleep-1",
            category="sleep",
            title="Before sleeping",
            arabic_text="بِاسْمِكَ اللَّهُمَّ أَمُوتُ وَأَحْيَا",
            english_text="In Your name, O Allah, I die and I live.",
            french_text="C'est en Ton nom, ô Allah, que je meurs et que je vis.",
            transliteration="Bismika Allahumma amutu wa ahya",
            reference="Bukhari 6324",
        ),
    ],
    "food": [
        Dua(
            id="fallback-food-1",
            category="food",
            title="Before eating",
            arabic_text="بِسْمِ اللَّهِ",
            english_text="In the name of Allah.",
            french_text="Au nom d'Allah.",
            transliteration="Bismillah",
            reference="Abu Dawud 3767",
        ),
    ],
}


def get_fallback_duas(category: str) -> List[Dua]:
    return [dua.model_copy() for dua in STATIC_DUAS.get(category, [])]
