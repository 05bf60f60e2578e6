"""
Web search for game rules questions.

Sends site-scoped queries built from the game title and the question's
keywords to the Google Custom Search API, scores and filters the hits,
enriches the best ones with text extracted from the page and condenses them
into a summary block for the answer prompt.

Queries are joined with settle-all: a failing query is logged and dropped,
and only a batch in which every query failed is an error.
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlparse

import aiohttp
from bs4 import BeautifulSoup

from ..config import SearchSettings
from .errors import ConfigurationError, ErrorKind, GatewayError, Ok, classify_exception, classify_status
from .models import WebSearchResult
from .resilience import settle_all
from .terminology import TermDictionary

# Most trusted first; earlier entries earn a larger bonus
TRUSTED_DOMAINS: Tuple[str, ...] = (
    "boardgamegeek.com",
    "reddit.com/r/boardgames",
    "boardlife.co.kr",
    "boardm.co.kr",
    "rulebook.io",
    "tabletopia.com",
    "wikimediafoundation.org",
    "bg3.co.kr",
    "divedice.com",
)

EXCLUDED_DOMAINS: Tuple[str, ...] = (
    "pinterest.com", "youtube.com", "instagram.com", "facebook.com", "twitter.com",
    "tiktok.com", "amazon.com", "ebay.com", "gmarket.co.kr", "coupang.com",
)

# BoardGameGeek pages without rules content
EXCLUDED_BGG_PATTERNS: Tuple[str, ...] = (
    "/video/", "/images/", "/image/", "/boardgameversion/", "/boardgameexpansion/",
    "/boardgameimplementation/", "/unboxing", "youtube.com", "vimeo.com",
)

PRIORITY_BGG_PATTERNS: Tuple[str, ...] = ("/thread/", "/boardgame/", "faq", "rules", "rulebook", "question", "forum")

RULE_KEYWORDS: Tuple[str, ...] = (
    "규칙", "룰북", "룰", "설명서", "매뉴얼", "가이드", "방법", "진행", "효과", "능력",
    "rule", "manual", "guide", "how", "effect", "ability", "faq", "question",
)

PENALTY_KEYWORDS: Tuple[str, ...] = (
    "video", "비디오", "unboxing", "언박싱", "review", "리뷰만",
    "image", "이미지", "gallery", "갤러리", "version", "버전정보",
)

STOPWORDS = frozenset((
    "어떻게", "무엇을", "무엇", "언제", "왜", "어디서", "어디", "누가", "누구",
    "그", "이", "저", "그런", "이런", "저런", "같은", "다른", "또", "그리고",
    "하지만", "그러나", "만약", "때문에", "에서", "에게", "에", "를", "을",
    "의", "가", "은", "는", "도", "만", "부터", "까지", "와", "과",
    "이다", "있다", "없다", "하다", "되다", "아니다", "이야", "아야",
    "뽑아", "아니면", "진행하면", "때", "시", "할때", "하면",
    "how", "what", "when", "why", "where", "who", "which", "that", "this",
    "the", "a", "an", "and", "or", "but", "if", "then", "can", "could",
    "would", "should", "will", "shall", "may", "might", "do", "does", "did",
    "have", "has", "had", "be", "is", "am", "are", "was", "were", "been",
))

# Extra weight for keywords naming a game mechanism
KEYWORD_WEIGHTS: Dict[str, int] = {
    **{word: 5 for word in ("효과", "능력", "액션", "스킬", "특수능력", "고유능력",
                            "effect", "ability", "action", "skill", "special")},
    **{word: 2 for word in ("카드", "토큰", "마커", "타일", "보드", "card", "token", "marker", "tile", "board")},
    **{word: 1 for word in ("가져가기", "획득", "사용", "교환", "거래", "무작위", "선택",
                            "take", "get", "use", "exchange", "trade", "random", "choose")},
}

SUMMARY_GAME_TERMS: Tuple[str, ...] = ("rule", "card", "action", "turn", "phase", "규칙", "카드", "액션", "턴")

NOISE_SELECTORS: Tuple[str, ...] = (
    "script", "style", "nav", "footer", "header", ".advertisement", ".ads", ".sidebar",
)

# (host fragment, content selectors tried in order)
CONTENT_SELECTORS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("boardgamegeek.com", (".forum-post-body, .wiki-content, .rules-content", "article, .content, .post")),
    ("reddit.com", ('.comment-body, .post-content, [data-testid="comment"]',)),
    ("boardlife.co.kr", (".content, .post-content, .article-content",)),
    ("boardm.co.kr", (".content, .post-content, .article-content",)),
)
GENERIC_CONTENT_SELECTORS: Tuple[str, ...] = ("main, article, .content, .post-content, #content",)

MAX_HIGHLIGHTS = 6
SUMMARY_RESULTS = 5

_HANGUL = re.compile(r"[가-힣]")
_HANGUL_WORD = re.compile(r"[가-힣]+")
_PUNCTUATION = re.compile(r"[?!.,;:]")
_SENTENCE_SPLIT = re.compile(r"[.!?。]")


def _host(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def _site(url: str) -> str:
    parsed = urlparse(url)
    return f"{(parsed.hostname or '').lower()}{parsed.path.lower()}"


def source_label(url: str) -> str:
    host = _host(url)
    if "boardgamegeek.com" in host:
        return "BGG"
    if "reddit.com" in host:
        return "Reddit"
    if "boardlife.co.kr" in host:
        return "Boardlife"
    if "boardm.co.kr" in host:
        return "BoardM"
    return "Web"


def extract_question_keywords(question: str, limit: int = 5) -> List[str]:
    """
    Pick the most specific words of a question, most important first.

    Stopwords and digit-only words are dropped, as are Hangul words shorter
    than 2 characters and other words shorter than 3. Mechanism words and
    longer words rank higher; ties keep question order.
    """
    scores: Dict[str, int] = {}
    for word in _PUNCTUATION.sub(" ", question.lower()).split():
        if word in STOPWORDS or word.isdigit() or word in scores:
            continue
        if len(word) < (2 if _HANGUL.search(word) else 3):
            continue
        score = 1 + KEYWORD_WEIGHTS.get(word, 0)
        if len(word) >= 4:
            score += 1
        if len(word) >= 6:
            score += 1
        if _HANGUL_WORD.fullmatch(word) and len(word) >= 3:
            score += 2
        scores[word] = score
    return sorted(scores, key=lambda word: scores[word], reverse=True)[:limit]


def build_search_queries(
    game_title: str,
    keywords: Sequence[str],
    english_titles: Sequence[str] = (),
    max_queries: int = 3,
) -> List[str]:
    """Site-scoped queries, the English title and the top keyword first."""
    title = english_titles[0] if english_titles else game_title.strip()
    queries: List[str] = []
    if keywords:
        first = keywords[0]
        queries.append(f'site:boardgamegeek.com "{title}" "{first}"')
        if title != game_title.strip():
            queries.append(f'site:boardgamegeek.com "{game_title.strip()}" {first}')
        queries.append(f'site:boardgamegeek.com/thread "{title}" "{first}"')
        queries.append(f'site:boardgamegeek.com "{title}" rules "{first}"')
        queries.append(f'site:boardgamegeek.com "{title}" FAQ "{first}"')
    else:
        queries.append(f'site:boardgamegeek.com "{title}" rules')
        queries.append(f'site:boardgamegeek.com "{title}" FAQ')
    return list(dict.fromkeys(queries))[:max_queries]


def is_excluded(url: str, title: str) -> bool:
    """Whether a hit is a shop, social or media page rather than rules content."""
    host = _host(url)
    if any(domain in host for domain in EXCLUDED_DOMAINS):
        return True
    if "boardgamegeek.com" in host:
        haystack = f"{url.lower()} {title.lower()}"
        return any(pattern in haystack for pattern in EXCLUDED_BGG_PATTERNS)
    return False


def relevance_score(
    url: str,
    title: str,
    snippet: str,
    game_titles: Sequence[str],
    keywords: Sequence[str],
) -> int:
    """
    Score a search hit for a question, never below 10.

    Trusted domains, game-title and keyword matches, BoardGameGeek forum and
    rules pages and rule vocabulary raise the score; media and version pages
    lower it.
    """
    score = 50
    full_text = f"{title.lower()} {snippet.lower()}"
    site = _site(url)

    for index, domain in enumerate(TRUSTED_DOMAINS):
        if domain in site:
            score += (len(TRUSTED_DOMAINS) - index) * 15
            break

    for game_title in {t.lower() for t in game_titles if t}:
        if game_title in full_text:
            score += 30

    matches = 0
    for index, keyword in enumerate(keywords):
        if keyword.lower() in full_text:
            score += 15 + (len(keywords) - index) * 5
            matches += 1
    if matches >= 2:
        score += matches * 10

    if "boardgamegeek.com" in _host(url):
        lowered_url = url.lower()
        if any(pattern in lowered_url or pattern in title.lower() for pattern in PRIORITY_BGG_PATTERNS):
            score += 50
        if "/thread/" in lowered_url:
            score += 25
        if "/boardgame/" in lowered_url and "/version/" not in lowered_url:
            score += 20
        if "faq" in full_text or "질문" in full_text:
            score += 20
        if "rules" in full_text or "rulebook" in full_text:
            score += 25

    score += 8 * sum(1 for keyword in RULE_KEYWORDS if keyword in full_text)
    score -= 20 * sum(1 for keyword in PENALTY_KEYWORDS if keyword in full_text)
    return max(score, 10)


def extract_page_text(html: str, url: str, max_chars: int = 1500) -> str:
    """Main text of a page: noise removed, site-specific content areas preferred."""
    soup = BeautifulSoup(html, "html.parser")
    for selector in NOISE_SELECTORS:
        for element in soup.select(selector):
            element.decompose()

    host = _host(url)
    selectors = next((sel for fragment, sel in CONTENT_SELECTORS if fragment in host), GENERIC_CONTENT_SELECTORS)
    text = ""
    for selector in selectors:
        text = " ".join(node.get_text(" ", strip=True) for node in soup.select(selector))
        if text.strip():
            break
    if not text.strip():
        root = soup.body or soup
        text = root.get_text(" ", strip=True)
    return " ".join(text.split())[:max_chars]


def _highlights(results: Sequence[WebSearchResult], question: str) -> List[str]:
    question_words = [word for word in question.lower().split() if len(word) > 2][:5]
    highlights: List[str] = []
    for result in results:
        for sentence in _SENTENCE_SPLIT.split(result.content or result.snippet):
            sentence = sentence.strip()
            if not 20 < len(sentence) < 300:
                continue
            lowered = sentence.lower()
            score = 2 * sum(1 for word in question_words if word in lowered)
            score += sum(1 for term in SUMMARY_GAME_TERMS if term in lowered)
            if score >= 3:
                highlights.append(f"- {sentence} ({source_label(result.url)})")
                if len(highlights) >= MAX_HIGHLIGHTS:
                    return highlights
    return highlights


def summarize_web_results(results: Sequence[WebSearchResult], question: str) -> str:
    """Condense the top results into key points, per-source notes and a reliability line."""
    if not results:
        return "No relevant web results were found. Check the official rulebook or FAQ."

    top = list(results[:SUMMARY_RESULTS])
    lines = ["Web search findings:"]
    highlights = _highlights(top, question)
    if highlights:
        lines.append("Key points:")
        lines.extend(highlights)
    lines.append("Sources:")
    for index, result in enumerate(top, 1):
        lines.append(f"{index}. {source_label(result.url)} ({result.title}): {result.snippet[:200]}...")
    average = round(sum(result.relevance_score for result in top) / len(top))
    lines.append(f"Reliability: {len(top)} sources, average relevance {average}")
    return "\n".join(lines)


class WebTransport(Protocol):
    """HTTP GET against absolute URLs."""

    async def get(self, url: str, params: Optional[Dict[str, str]], timeout: float) -> Tuple[int, str]:
        ...

    async def close(self) -> None:
        ...


class AiohttpWebTransport:
    """aiohttp-backed transport for the search API and the result pages."""

    def __init__(self, user_agent: str, session: Optional[aiohttp.ClientSession] = None):
        self.user_agent = user_agent
        self._session = session
        self._owns_session = session is None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"User-Agent": self.user_agent})
            self._owns_session = True
        return self._session

    async def get(self, url: str, params: Optional[Dict[str, str]], timeout: float) -> Tuple[int, str]:
        session = self._ensure_session()
        async with session.get(url, params=params, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            return response.status, await response.text()

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()


class WebResearcher(ABC):
    """Finds and summarizes web pages about a question."""

    @abstractmethod
    async def search(self, game_title: str, question: str) -> List[WebSearchResult]:
        """Return scored results, best first.

        Raises:
            GatewayError: If no search call succeeded
        """

    @abstractmethod
    def summarize(self, results: Sequence[WebSearchResult], question: str) -> str:
        ...

    async def close(self) -> None:
        return None


class GoogleWebSearcher(WebResearcher):
    """Web research through the Google Custom Search JSON API."""

    def __init__(
        self,
        settings: SearchSettings,
        transport: WebTransport,
        dictionary: Optional[TermDictionary] = None,
    ):
        if not settings.api_key or not settings.engine_id:
            raise ConfigurationError(
                "Web search needs RULEMASTER_SEARCH_API_KEY and RULEMASTER_SEARCH_ENGINE_ID "
                "(or RULEMASTER_SEARCH_ENABLED=false)"
            )
        self.settings = settings
        self.transport = transport
        self.dictionary = dictionary or TermDictionary()
        self.logger = logging.getLogger(__name__)

    async def _fetch(self, url: str, params: Optional[Dict[str, str]], timeout: float) -> Tuple[int, str]:
        try:
            return await asyncio.wait_for(self.transport.get(url, params, timeout), timeout=timeout)
        except Exception as e:
            raise classify_exception(e) from e

    async def _run_query(self, query: str) -> List[Dict]:
        params = {
            "key": self.settings.api_key,
            "cx": self.settings.engine_id,
            "q": query,
            "num": str(self.settings.results_per_query),
        }
        status, body = await self._fetch(self.settings.base_url, params, self.settings.request_timeout_seconds)
        error = classify_status(status, body)
        if error is not None:
            raise error
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            raise GatewayError(ErrorKind.PARSING, f"Search response is not JSON: {e}", original=e) from e
        return payload.get("items") or []

    async def _enrich(self, result: WebSearchResult) -> WebSearchResult:
        try:
            status, body = await self._fetch(result.url, None, self.settings.enrich_timeout_seconds)
        except GatewayError as e:
            self.logger.debug(f"Page fetch for {result.url} failed: {e.message}")
            return result
        if status >= 400:
            self.logger.debug(f"Page fetch for {result.url} returned {status}")
            return result
        content = extract_page_text(body, result.url, self.settings.max_content_chars)
        if not content:
            return result
        return WebSearchResult(
            title=result.title,
            url=result.url,
            snippet=result.snippet,
            relevance_score=result.relevance_score,
            content=content,
        )

    async def search(self, game_title: str, question: str) -> List[WebSearchResult]:
        english_titles = self.dictionary.translate_title(game_title)
        keywords = extract_question_keywords(question)
        queries = build_search_queries(game_title, keywords, english_titles, self.settings.max_queries)
        game_titles = [game_title, *english_titles]

        outcomes = await settle_all(self._run_query(query) for query in queries)

        results: Dict[str, WebSearchResult] = {}
        errors: List[GatewayError] = []
        for query, outcome in zip(queries, outcomes):
            if not isinstance(outcome, Ok):
                errors.append(outcome.error)
                self.logger.warning(
                    f"Web search for '{query}' failed: {outcome.error.message}",
                    extra={'pattern': query, 'error_kind': outcome.kind.value},
                )
                continue
            for item in outcome.value:
                url = item.get("link") or ""
                title = item.get("title") or ""
                snippet = item.get("snippet") or ""
                if not url or url in results or is_excluded(url, title):
                    continue
                results[url] = WebSearchResult(
                    title=title,
                    url=url,
                    snippet=snippet,
                    relevance_score=relevance_score(url, title, snippet, game_titles, keywords),
                )

        if queries and len(errors) == len(queries):
            raise GatewayError(errors[0].kind, f"All {len(queries)} web search calls failed: {errors[0].message}")

        ranked = sorted(results.values(), key=lambda result: result.relevance_score, reverse=True)
        ranked = ranked[:self.settings.max_results]

        enrich_count = min(self.settings.enrich_top, len(ranked))
        enriched = await asyncio.gather(*(self._enrich(result) for result in ranked[:enrich_count]))
        self.logger.info(f"Web search for '{game_title}' kept {len(ranked)} results from {len(queries)} queries")
        return list(enriched) + ranked[enrich_count:]

    def summarize(self, results: Sequence[WebSearchResult], question: str) -> str:
        return summarize_web_results(results, question)

    async def close(self) -> None:
        await self.transport.close()
