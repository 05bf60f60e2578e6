"""
Lookup tables for game titles and game vocabulary.

The tables are plain data; ``TermDictionary`` wraps them so the gateway,
analyzer and orchestrator can be given a different dictionary in tests.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple


# Korean title -> canonical English titles on BoardGameGeek
TITLE_TRANSLATIONS: Dict[str, Tuple[str, ...]] = {
    "봄버스터즈": ("Bomb Busters", "BombBusters"),
    "스플렌더": ("Splendor",),
    "스플렌도르": ("Splendor",),
    "카탄": ("Catan", "Settlers of Catan"),
    "윙스팬": ("Wingspan",),
    "아그리콜라": ("Agricola",),
    "아크노바": ("Ark Nova",),
    "아크 노바": ("Ark Nova",),
    "스위트랜드": ("Sweet Land", "Sweet Lands", "Sweetland"),
    "스위트 랜드": ("Sweet Land", "Sweet Lands"),
    "루미큐브": ("Rummikub", "Rummy Cube"),
    "루미 큐브": ("Rummikub", "Rummy Cube"),
    "티켓 투 라이드": ("Ticket to Ride",),
    "티켓투라이드": ("Ticket to Ride",),
    "킹 오브 토쿄": ("King of Tokyo",),
    "킹오브토쿄": ("King of Tokyo",),
    "카르카손": ("Carcassonne",),
    "파워 그리드": ("Power Grid", "Powergrid"),
    "파워그리드": ("Power Grid", "Powergrid"),
    "테라포밍 마스": ("Terraforming Mars",),
    "글룸헤이븐": ("Gloomhaven",),
    "스피릿 아일랜드": ("Spirit Island",),
    "사이쓰": ("Scythe",),
    "아컴호러": ("Arkham Horror",),
    "세븐원더스": ("7 Wonders",),
}

# Korean titles written without spaces -> the spaced spellings users also type
SPACING_VARIANTS: Dict[str, Tuple[str, ...]] = {
    "스위트랜드": ("스위트 랜드",),
    "루미큐브": ("루미 큐브",),
    "아크노바": ("아크 노바",),
    "킹오브토쿄": ("킹 오브 토쿄", "킹오브 토쿄"),
    "티켓투라이드": ("티켓 투 라이드", "티켓투 라이드"),
    "파워그리드": ("파워 그리드",),
    "테라포밍마스": ("테라포밍 마스",),
    "스피릿아일랜드": ("스피릿 아일랜드",),
}

# Words naming physical or structural game elements
GAME_ELEMENT_TERMS: Tuple[str, ...] = (
    "카드명", "액션", "페이즈", "라운드", "턴", "보드", "마커", "토큰",
    "action", "phase", "round", "turn", "board", "marker", "token",
    "tile", "meeple", "worker", "deck", "dice",
)

# Titles whose questions are usually intricate enough to deserve research
PRIORITY_GAMES: Tuple[str, ...] = (
    "arkham horror", "아컴호러",
    "wingspan", "윙스팬",
    "terraforming mars", "테라포밍 마스", "테라포밍마스",
    "gloomhaven", "글룸헤이븐",
    "spirit island", "스피릿 아일랜드", "스피릿아일랜드",
    "scythe", "사이쓰",
    "ark nova", "아크노바", "아크 노바",
)


@dataclass(frozen=True)
class GameTerm:
    korean: str
    english: str
    description: str


GAME_GLOSSARIES: Dict[str, Tuple[GameTerm, ...]] = {
    "ark nova": (
        GameTerm("매력", "Appeal", "Attracts visitors and drives income"),
        GameTerm("보전 점수", "Conservation points", "Second scoring track that must meet appeal"),
        GameTerm("휴식", "Break", "Triggered when the break track fills; resets tokens and income"),
        GameTerm("X 토큰", "X-token", "Boosts the strength of an action card"),
        GameTerm("사육장", "Enclosure", "Building that houses animals"),
        GameTerm("후원사", "Sponsors", "Action card that plays sponsor cards or gains money"),
    ),
    "wingspan": (
        GameTerm("서식지", "Habitat", "Forest, grassland or wetland row on the player mat"),
        GameTerm("먹이 토큰", "Food token", "Paid to play birds"),
        GameTerm("알", "Egg", "Laid on birds; paid to play birds in later columns"),
        GameTerm("보너스 카드", "Bonus card", "End-game scoring objective"),
        GameTerm("라운드 목표", "Round goal", "Scored at the end of each round"),
        GameTerm("끼워넣기", "Tuck", "Card placed under a bird, worth one point"),
    ),
    "7 wonders": (
        GameTerm("불가사의", "Wonder", "Player board built in stages"),
        GameTerm("시대", "Age", "One of the three decks played in order"),
        GameTerm("군사 충돌", "Military conflict", "Resolved against neighbours at the end of each age"),
    ),
}

GLOSSARY_ALIASES: Dict[str, str] = {
    "아크노바": "ark nova",
    "아크 노바": "ark nova",
    "윙스팬": "wingspan",
    "세븐원더스": "7 wonders",
    "세븐 원더스": "7 wonders",
}


def contains_term(text: str, term: str) -> bool:
    """Case-insensitive match; ASCII terms must sit on word boundaries."""
    lowered = text.lower()
    term = term.lower()
    if term.isascii():
        return re.search(r"(?<![a-z0-9])" + re.escape(term) + r"(?![a-z0-9])", lowered) is not None
    return term in lowered


class TermDictionary:
    """Read-only view over title translations and game vocabulary."""

    def __init__(
        self,
        translations: Optional[Mapping[str, Sequence[str]]] = None,
        spacing_variants: Optional[Mapping[str, Sequence[str]]] = None,
        game_terms: Optional[Sequence[str]] = None,
        priority_games: Optional[Sequence[str]] = None,
        glossaries: Optional[Mapping[str, Sequence[GameTerm]]] = None,
    ):
        self.translations = dict(translations if translations is not None else TITLE_TRANSLATIONS)
        self.spacing_variants = dict(spacing_variants if spacing_variants is not None else SPACING_VARIANTS)
        self.game_terms = tuple(game_terms if game_terms is not None else GAME_ELEMENT_TERMS)
        self.priority_games = frozenset(
            name.lower() for name in (priority_games if priority_games is not None else PRIORITY_GAMES)
        )
        self.glossaries = dict(glossaries if glossaries is not None else GAME_GLOSSARIES)

    def translate_title(self, name: str) -> List[str]:
        return list(self.translations.get(name.strip(), ()))

    def spaced_variants(self, name: str) -> List[str]:
        return list(self.spacing_variants.get(name.strip(), ()))

    def find_game_terms(self, text: str) -> List[str]:
        return [term for term in self.game_terms if contains_term(text, term)]

    def is_priority_game(self, game_title: Optional[str]) -> bool:
        if not game_title:
            return False
        title = game_title.strip().lower()
        return any(name in title for name in self.priority_games)

    def glossary_for(self, game_title: str) -> List[GameTerm]:
        key = game_title.strip().lower()
        key = GLOSSARY_ALIASES.get(key, key)
        return list(self.glossaries.get(key, ()))
