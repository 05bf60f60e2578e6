from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    timestamp: datetime


class AskQuestionRequest(BaseModel):
    game_title: str = Field(..., min_length=1, description="Game selected by the user")
    question: str = Field(..., description="Rules question, optionally carrying the force-research directive")
    use_v2_analysis: bool = False


class ComplexityPayload(BaseModel):
    score: int
    reasoning: list[str]
    priority: str
    forced: bool = False


class AnalysisV2Payload(BaseModel):
    type: str
    requires_research: bool
    confidence: float
    explanation: str
    refined_by_llm: bool = False


class AskQuestionResponse(BaseModel):
    answer: str
    research_used: bool
    sources: list[str] | None = None
    from_cache: bool | None = None
    complexity: ComplexityPayload | None = None
    analysis_v2: AnalysisV2Payload | None = None
    stages: list[str] = Field(default_factory=list)


class RemainingQuota(BaseModel):
    daily: int
    window: int


class UsageResponse(BaseModel):
    date: str
    window_count: int
    max_per_window: int
    total_questions: int
    daily_research_usage: int
    daily_limit: int
    cache_hits: int
    can_perform_research: bool
    remaining: RemainingQuota
    report: str


class CachedQuery(BaseModel):
    key: str
    game_title: str
    question: str
    hit_count: int
    created_at: datetime


class CacheStatsResponse(BaseModel):
    size: int
    hits: int
    misses: int
    hit_rate: float
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None
    popular: list[CachedQuery] = Field(default_factory=list)
    recent: list[CachedQuery] = Field(default_factory=list)


class CacheClearResponse(BaseModel):
    cleared: int


class CacheCleanupResponse(BaseModel):
    removed: int
    size: int


class GameCacheResponse(BaseModel):
    game_title: str
    entries: list[CachedQuery]


class GameCandidate(BaseModel):
    external_id: int
    name: str
    year_published: int | None = None


class GameSearchResponse(BaseModel):
    query: str
    patterns: list[str]
    results: list[GameCandidate]


class GameDetailResponse(BaseModel):
    external_id: int
    name: str
    url: str
    year_published: int | None = None
    min_players: int | None = None
    max_players: int | None = None
    playing_time: int | None = None
    min_play_time: int | None = None
    max_play_time: int | None = None
    min_age: int | None = None
    description: str = ""
    thumbnail: str | None = None
    image: str | None = None
    average_rating: float | None = None
    users_rated: int | None = None
    rank: int | None = None
    weight: float | None = None
    publishers: list[str] = Field(default_factory=list)
    designers: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    mechanics: list[str] = Field(default_factory=list)
