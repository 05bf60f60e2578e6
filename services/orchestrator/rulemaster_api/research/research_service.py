"""
External research for a game question.

Resolves the selected game on BoardGameGeek, fetches its detail record and
condenses it into a short factual summary with source links for the answer
prompt. When a web researcher is configured its findings are merged in
ahead of the record.
"""

import logging
import re
from typing import List, Optional, Tuple

from .bgg_gateway import BGGSearchGateway
from .errors import Err, Ok
from .models import GameDetail, ResearchResult, SearchResult, WebSearchResult, game_page_url
from .resilience import settle_all
from .web_search import WebResearcher

MAX_DESCRIPTION_CHARS = 600
MAX_SOURCES = 3

# Ranked candidates and the detail record of the best one
GameLookup = Tuple[List[SearchResult], Optional[GameDetail]]

# Fact label -> words that make the fact relevant to a question
FACT_TOPICS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("players", ("player", "players", "몇 명", "몇명", "인원", "solo", "솔로")),
    ("time", ("time", "long", "minutes", "시간", "분")),
    ("age", ("age", "kids", "children", "나이", "연령")),
    ("mechanics", ("mechanic", "mechanics", "how does", "작동", "메커니즘", "액션", "action")),
    ("categories", ("category", "theme", "테마", "장르")),
    ("weight", ("complex", "difficult", "hard", "weight", "난이도", "어려")),
    ("rating", ("rating", "good", "rank", "평점", "순위")),
)


def _clean_description(description: str) -> str:
    text = re.sub(r"<[^>]+>", " ", description)
    text = " ".join(text.split())
    if len(text) > MAX_DESCRIPTION_CHARS:
        text = text[:MAX_DESCRIPTION_CHARS].rsplit(" ", 1)[0] + "..."
    return text


def _fact_lines(detail: GameDetail) -> List[Tuple[str, str]]:
    facts: List[Tuple[str, str]] = []
    if detail.min_players is not None or detail.max_players is not None:
        if detail.min_players == detail.max_players:
            facts.append(("players", f"Players: {detail.min_players}"))
        else:
            facts.append(("players", f"Players: {detail.min_players}-{detail.max_players}"))
    if detail.playing_time:
        span = ""
        if detail.min_play_time and detail.max_play_time and detail.min_play_time != detail.max_play_time:
            span = f" ({detail.min_play_time}-{detail.max_play_time} min)"
        facts.append(("time", f"Playing time: {detail.playing_time} min{span}"))
    if detail.min_age:
        facts.append(("age", f"Minimum age: {detail.min_age}+"))
    if detail.mechanics:
        facts.append(("mechanics", f"Mechanics: {', '.join(detail.mechanics[:6])}"))
    if detail.categories:
        facts.append(("categories", f"Categories: {', '.join(detail.categories[:5])}"))
    if detail.weight:
        facts.append(("weight", f"Complexity weight: {detail.weight:.2f} / 5"))
    if detail.average_rating:
        rating = f"Average rating: {detail.average_rating:.1f}"
        if detail.users_rated:
            rating += f" from {detail.users_rated} ratings"
        if detail.rank:
            rating += f", overall rank #{detail.rank}"
        facts.append(("rating", rating))
    return facts


def _relevant_topics(question: str) -> List[str]:
    lowered = question.lower()
    return [topic for topic, words in FACT_TOPICS if any(word in lowered for word in words)]


def build_summary(detail: GameDetail, question: str, candidates: List[SearchResult]) -> str:
    """Condense a detail record into prompt-ready text, question-relevant facts first."""
    title = detail.name
    if detail.year_published:
        title += f" ({detail.year_published})"

    facts = _fact_lines(detail)
    topics = _relevant_topics(question)
    facts.sort(key=lambda fact: 0 if fact[0] in topics else 1)

    lines = [f"BoardGameGeek record: {title}"]
    lines.extend(f"- {text}" for _, text in facts)
    if detail.designers:
        lines.append(f"- Designers: {', '.join(detail.designers[:3])}")
    description = _clean_description(detail.description)
    if description:
        lines.append(f"Overview: {description}")
    others = [c.name for c in candidates if c.external_id != detail.external_id][:3]
    if others:
        lines.append(f"Other possible matches: {', '.join(others)}")
    return "\n".join(lines)


class ResearchService:
    """Runs one research pass for a (game, question) pair."""

    def __init__(
        self,
        gateway: BGGSearchGateway,
        max_sources: int = MAX_SOURCES,
        web_searcher: Optional[WebResearcher] = None,
    ):
        self.gateway = gateway
        self.max_sources = max_sources
        self.web_searcher = web_searcher
        self.logger = logging.getLogger(__name__)

    async def _lookup_game(self, game_title: str) -> GameLookup:
        candidates = await self.gateway.search_game_by_name(game_title)
        if not candidates:
            self.logger.info(f"No BoardGameGeek match for '{game_title}'")
            return [], None

        detail_result = await self.gateway.get_game_info(candidates[0].external_id)
        if isinstance(detail_result, Err):
            raise detail_result.error
        return candidates, detail_result.value

    async def _gather(
        self, game_title: str, question: str
    ) -> Tuple[Optional[GameLookup], Optional[List[WebSearchResult]]]:
        if self.web_searcher is None:
            return await self._lookup_game(game_title), None

        game_outcome, web_outcome = await settle_all([
            self._lookup_game(game_title),
            self.web_searcher.search(game_title, question),
        ])
        if isinstance(game_outcome, Err) and isinstance(web_outcome, Err):
            raise game_outcome.error
        for source, outcome in (("BoardGameGeek", game_outcome), ("Web search", web_outcome)):
            if isinstance(outcome, Err):
                self.logger.warning(
                    f"{source} research for '{game_title}' failed, continuing without it: {outcome.error.message}",
                    extra={'game_title': game_title, 'error_kind': outcome.kind.value},
                )
        return (
            game_outcome.value if isinstance(game_outcome, Ok) else None,
            web_outcome.value if isinstance(web_outcome, Ok) else None,
        )

    def _sources(
        self,
        detail: Optional[GameDetail],
        web_results: List[WebSearchResult],
        candidates: List[SearchResult],
    ) -> List[str]:
        urls: List[str] = []
        if detail is not None:
            urls.append(detail.url)
        urls.extend(result.url for result in web_results)
        urls.extend(game_page_url(candidate.external_id) for candidate in candidates)
        return list(dict.fromkeys(urls))[:self.max_sources]

    async def perform_research(self, game_title: str, question: str) -> ResearchResult:
        """
        Research a question about a game.

        The BoardGameGeek lookup and, when configured, the web search run
        concurrently; either may fail as long as the other succeeds.

        Args:
            game_title: Game name as selected by the user
            question: Question text without the force directive

        Returns:
            ResearchResult with summary and source URLs; an unresolvable game
            without web results yields an explanatory summary and no sources

        Raises:
            GatewayError: If every research path failed
        """
        game_lookup, web_outcome = await self._gather(game_title, question)
        candidates, detail = game_lookup if game_lookup is not None else ([], None)
        web_results = web_outcome or []

        blocks: List[str] = []
        if web_results:
            blocks.append(self.web_searcher.summarize(web_results, question))
        if detail is not None:
            blocks.append(build_summary(detail, question, candidates))
        elif game_lookup is not None:
            blocks.append(f"No BoardGameGeek record matched '{game_title}'.")
        if not blocks:
            blocks.append(self.web_searcher.summarize([], question))

        if detail is not None:
            self.logger.info(f"Research for '{game_title}' resolved to {detail.name} ({detail.external_id})")
        return ResearchResult(
            summary="\n\n".join(blocks),
            sources=self._sources(detail, web_results, candidates),
            candidates=candidates,
            detail=detail,
            web_results=web_results,
        )
