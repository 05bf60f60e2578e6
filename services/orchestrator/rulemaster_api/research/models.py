"""
Data models for the research orchestration package.

Request-scoped values (ComplexityScore, SearchResult) are immutable; cache
entries and limiter state are mutated only by their owning service.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


BGG_GAME_URL = "https://boardgamegeek.com/boardgame/{game_id}"


def game_page_url(game_id: int) -> str:
    return BGG_GAME_URL.format(game_id=game_id)


class ResearchPriority(str, Enum):
    """How strongly a question calls for external research."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class QuestionType(str, Enum):
    """Coarse question classes used by the second-generation analyzer."""
    RULE = "rule"
    STRATEGY = "strategy"
    EXCEPTION = "exception"


class ResearchStage(str, Enum):
    """Progress stages reported while a question is answered."""
    ANALYZING = "analyzing"
    SEARCHING = "searching"
    PROCESSING = "processing"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ComplexityScore:
    """Heuristic estimate of how much a question needs external research."""
    total_score: int
    should_trigger_research: bool
    reasoning: Tuple[str, ...]
    priority: ResearchPriority = ResearchPriority.LOW
    length_score: int = 0
    keyword_score: int = 0
    game_element_score: int = 0
    game_priority_bonus: int = 0
    rule_specific_bonus: int = 0
    forced: bool = False


@dataclass(frozen=True)
class QuestionAnalysisV2:
    """Result of the keyword-first question classifier."""
    question_type: QuestionType
    requires_research: bool
    confidence: float
    reasoning: str
    refined_by_llm: bool = False

    @property
    def priority(self) -> ResearchPriority:
        if self.question_type is QuestionType.EXCEPTION:
            return ResearchPriority.HIGH
        if self.question_type is QuestionType.STRATEGY:
            return ResearchPriority.MEDIUM
        return ResearchPriority.LOW


@dataclass(frozen=True)
class SearchResult:
    """A candidate game returned by a name search."""
    external_id: int
    name: str
    year_published: Optional[int] = None


@dataclass(frozen=True)
class GameDetail:
    """Full record for a single game fetched by id."""
    external_id: int
    name: str
    year_published: Optional[int] = None
    min_players: Optional[int] = None
    max_players: Optional[int] = None
    playing_time: Optional[int] = None
    min_play_time: Optional[int] = None
    max_play_time: Optional[int] = None
    min_age: Optional[int] = None
    description: str = ""
    thumbnail: Optional[str] = None
    image: Optional[str] = None
    average_rating: Optional[float] = None
    users_rated: Optional[int] = None
    rank: Optional[int] = None
    weight: Optional[float] = None
    publishers: Tuple[str, ...] = ()
    designers: Tuple[str, ...] = ()
    categories: Tuple[str, ...] = ()
    mechanics: Tuple[str, ...] = ()

    @property
    def url(self) -> str:
        return game_page_url(self.external_id)


@dataclass(frozen=True)
class WebSearchResult:
    """A scored web page found for a question, with its snippet or extracted text."""
    title: str
    url: str
    snippet: str
    relevance_score: int = 0
    content: Optional[str] = None


@dataclass
class ResearchResult:
    """Output of one research run, as stored in the cache."""
    summary: str
    sources: List[str] = field(default_factory=list)
    candidates: List[SearchResult] = field(default_factory=list)
    detail: Optional[GameDetail] = None
    web_results: List[WebSearchResult] = field(default_factory=list)


@dataclass
class CacheEntry:
    """A memoized research result addressed by fingerprint."""
    key: str
    game_title: str
    question: str
    summary: str
    sources: List[str]
    created_at: float
    ttl: float
    candidates: List[SearchResult] = field(default_factory=list)
    hit_count: int = 0
    last_accessed: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl

    def to_result(self) -> ResearchResult:
        return ResearchResult(summary=self.summary, sources=list(self.sources), candidates=list(self.candidates))


@dataclass
class LimiterState:
    """Fixed-window research counter."""
    window_start: float
    count: int
    max_per_window: int


@dataclass(frozen=True)
class ResearchValidation:
    """Outcome of a pre-flight quota check for a research request."""
    allowed: bool
    reason: Optional[str] = None
    suggestion: Optional[str] = None


@dataclass(frozen=True)
class UsageStatus:
    """Snapshot of the limiter counters."""
    date: str
    window_start: float
    window_count: int
    max_per_window: int
    window_remaining: int
    total_questions: int
    daily_research_usage: int
    daily_limit: int
    daily_remaining: int
    cache_hits: int
    can_perform_research: bool


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache health."""
    size: int
    hits: int
    misses: int
    hit_rate: float
    oldest_entry: Optional[float]
    newest_entry: Optional[float]


@dataclass
class ResearchResponse:
    """Everything the chat front end needs to render an answer."""
    answer: str
    research_used: bool
    complexity: Optional[ComplexityScore] = None
    sources: Optional[List[str]] = None
    from_cache: Optional[bool] = None
    analysis_v2: Optional[QuestionAnalysisV2] = None
    stages: List[ResearchStage] = field(default_factory=list)

