"""
FastAPI routers for research orchestration and game lookups.

The research components are built once per application and kept on
``app.state``; handlers receive them through ``ResearchServicesDep``.
"""

import logging
from datetime import datetime, timezone
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ..bootstrap import ResearchServices, build_research_services
from ..config import Settings, get_settings
from ..schemas import (
    AnalysisV2Payload, AskQuestionRequest, AskQuestionResponse, CacheCleanupResponse,
    CacheClearResponse, CachedQuery, CacheStatsResponse, ComplexityPayload, GameCacheResponse,
    GameCandidate, GameDetailResponse, GameSearchResponse, RemainingQuota, UsageResponse,
)
from .errors import AnswerComposerError, Err, ErrorKind, GatewayError
from .models import CacheEntry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/research", tags=["research"])
games_router = APIRouter(prefix="/games", tags=["games"])

SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_research_services(request: Request, settings: SettingsDep) -> ResearchServices:
    """Return the application's research services, building them on first use."""
    services = getattr(request.app.state, "research_services", None)
    if services is None:
        services = build_research_services(settings)
        request.app.state.research_services = services
    return services


ResearchServicesDep = Annotated[ResearchServices, Depends(get_research_services)]

ERROR_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.RATE_LIMIT: status.HTTP_429_TOO_MANY_REQUESTS,
}


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _cached_queries(entries: List[CacheEntry]) -> List[CachedQuery]:
    return [
        CachedQuery(
            key=entry.key,
            game_title=entry.game_title,
            question=entry.question,
            hit_count=entry.hit_count,
            created_at=_timestamp(entry.created_at),
        )
        for entry in entries
    ]


@router.post("/ask", response_model=AskQuestionResponse)
async def ask_question(request: AskQuestionRequest, services: ResearchServicesDep) -> AskQuestionResponse:
    """
    Answer a rules question, researching it when warranted.

    Args:
        request: Game, question and analyzer selection
        services: Application research services

    Returns:
        AskQuestionResponse with the answer and research metadata

    Raises:
        HTTPException: 502 if the answer backend fails
    """
    try:
        response = await services.orchestrator.ask_game_question_with_smart_research(
            request.game_title,
            request.question,
            use_v2_analysis=request.use_v2_analysis,
        )
    except AnswerComposerError as e:
        logger.error(f"Answer backend failed for '{request.game_title}': {e}")
        detail = f"Answer backend error: {e}"
        if e.status_code:
            detail = f"{detail} (status {e.status_code} {e.status_text or ''})".rstrip()
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail) from e

    complexity = None
    if response.complexity is not None:
        complexity = ComplexityPayload(
            score=response.complexity.total_score,
            reasoning=list(response.complexity.reasoning),
            priority=response.complexity.priority.value,
            forced=response.complexity.forced,
        )
    analysis = None
    if response.analysis_v2 is not None:
        analysis = AnalysisV2Payload(
            type=response.analysis_v2.question_type.value,
            requires_research=response.analysis_v2.requires_research,
            confidence=response.analysis_v2.confidence,
            explanation=response.analysis_v2.reasoning,
            refined_by_llm=response.analysis_v2.refined_by_llm,
        )

    return AskQuestionResponse(
        answer=response.answer,
        research_used=response.research_used,
        sources=response.sources,
        from_cache=response.from_cache,
        complexity=complexity,
        analysis_v2=analysis,
        stages=[stage.value for stage in response.stages],
    )


@router.get("/usage", response_model=UsageResponse)
async def research_usage(services: ResearchServicesDep) -> UsageResponse:
    limiter = services.limiter
    usage = limiter.get_usage_status()
    return UsageResponse(
        date=usage.date,
        window_count=usage.window_count,
        max_per_window=usage.max_per_window,
        total_questions=usage.total_questions,
        daily_research_usage=usage.daily_research_usage,
        daily_limit=usage.daily_limit,
        cache_hits=usage.cache_hits,
        can_perform_research=usage.can_perform_research,
        remaining=RemainingQuota(daily=usage.daily_remaining, window=usage.window_remaining),
        report=limiter.generate_usage_report(),
    )


@router.get("/cache", response_model=CacheStatsResponse)
async def cache_stats(services: ResearchServicesDep) -> CacheStatsResponse:
    cache = services.cache
    stats = cache.get_stats()
    return CacheStatsResponse(
        size=stats.size,
        hits=stats.hits,
        misses=stats.misses,
        hit_rate=stats.hit_rate,
        oldest_entry=_timestamp(stats.oldest_entry) if stats.oldest_entry is not None else None,
        newest_entry=_timestamp(stats.newest_entry) if stats.newest_entry is not None else None,
        popular=_cached_queries(cache.get_popular_queries(5)),
        recent=_cached_queries(cache.get_recent_queries(5)),
    )


@router.post("/cache/cleanup", response_model=CacheCleanupResponse)
async def cleanup_cache(services: ResearchServicesDep) -> CacheCleanupResponse:
    """Purge expired cache entries."""
    removed = services.cache.cleanup()
    return CacheCleanupResponse(removed=removed, size=len(services.cache))


@router.get("/cache/{game_title}", response_model=GameCacheResponse)
async def game_cache(game_title: str, services: ResearchServicesDep) -> GameCacheResponse:
    entries = services.cache.get_by_game(game_title)
    return GameCacheResponse(game_title=game_title, entries=_cached_queries(entries))


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(services: ResearchServicesDep) -> CacheClearResponse:
    return CacheClearResponse(cleared=services.cache.clear_all())


@router.delete("/cache/{game_title}", response_model=CacheClearResponse)
async def clear_game_cache(game_title: str, services: ResearchServicesDep) -> CacheClearResponse:
    return CacheClearResponse(cleared=services.cache.clear_game_cache(game_title))


@games_router.get("/search", response_model=GameSearchResponse)
async def search_games(
    services: ResearchServicesDep,
    name: Annotated[str, Query(min_length=1, description="Game name in any language or spelling")],
) -> GameSearchResponse:
    gateway = services.gateway
    patterns = gateway.generate_search_patterns(name)
    try:
        batches = await gateway.execute_parallel_search(patterns)
    except GatewayError as e:
        logger.warning(f"Game search for '{name}' failed: {e.message}")
        status_code = ERROR_STATUS.get(e.kind, status.HTTP_502_BAD_GATEWAY)
        raise HTTPException(status_code=status_code, detail=e.message) from e
    results = gateway.rank_and_deduplicate(batches, name)
    return GameSearchResponse(
        query=name,
        patterns=patterns,
        results=[
            GameCandidate(external_id=r.external_id, name=r.name, year_published=r.year_published)
            for r in results
        ],
    )


@games_router.get("/{game_id}", response_model=GameDetailResponse)
async def game_detail(game_id: int, services: ResearchServicesDep) -> GameDetailResponse:
    outcome = await services.gateway.get_game_info(game_id)
    if isinstance(outcome, Err):
        status_code = ERROR_STATUS.get(outcome.kind, status.HTTP_502_BAD_GATEWAY)
        raise HTTPException(status_code=status_code, detail=outcome.error.message)

    detail = outcome.value
    return GameDetailResponse(
        external_id=detail.external_id,
        name=detail.name,
        url=detail.url,
        year_published=detail.year_published,
        min_players=detail.min_players,
        max_players=detail.max_players,
        playing_time=detail.playing_time,
        min_play_time=detail.min_play_time,
        max_play_time=detail.max_play_time,
        min_age=detail.min_age,
        description=detail.description,
        thumbnail=detail.thumbnail,
        image=detail.image,
        average_rating=detail.average_rating,
        users_rated=detail.users_rated,
        rank=detail.rank,
        weight=detail.weight,
        publishers=list(detail.publishers),
        designers=list(detail.designers),
        categories=list(detail.categories),
        mechanics=list(detail.mechanics),
    )
