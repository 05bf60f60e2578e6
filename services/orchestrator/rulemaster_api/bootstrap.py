from __future__ import annotations

import logging
from dataclasses import dataclass

from .aws import BedrockAnswerComposer
from .config import Settings
from .research.bgg_gateway import AiohttpBGGTransport, BGGSearchGateway, BGGTransport
from .research.complexity_analyzer import ComplexityAnalyzer
from .research.composer import AnswerComposer
from .research.orchestrator import ResearchOrchestrator
from .research.research_cache import ResearchCache
from .research.research_limiter import ResearchLimiter
from .research.research_service import ResearchService
from .research.terminology import TermDictionary
from .research.web_search import AiohttpWebTransport, GoogleWebSearcher, WebResearcher, WebTransport

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResearchServices:
    """Process-wide research components owned by the application."""

    limiter: ResearchLimiter
    cache: ResearchCache
    gateway: BGGSearchGateway
    orchestrator: ResearchOrchestrator
    web_searcher: WebResearcher | None = None

    async def close(self) -> None:
        await self.gateway.close()
        if self.web_searcher is not None:
            await self.web_searcher.close()


def build_research_services(
    settings: Settings,
    composer: AnswerComposer | None = None,
    transport: BGGTransport | None = None,
    web_transport: WebTransport | None = None,
) -> ResearchServices:
    """Wire the research stack from settings.

    Raises:
        ConfigurationError: If the default Bedrock composer cannot be constructed,
            or web search is enabled without credentials
    """
    research = settings.research
    dictionary = TermDictionary()

    if composer is None:
        composer = BedrockAnswerComposer(settings.aws)
    if transport is None:
        transport = AiohttpBGGTransport(settings.bgg.base_url, settings.bgg.user_agent)

    web_searcher: WebResearcher | None = None
    if settings.search.enabled:
        if web_transport is None:
            web_transport = AiohttpWebTransport(settings.search.user_agent)
        web_searcher = GoogleWebSearcher(settings.search, web_transport, dictionary=dictionary)

    limiter = ResearchLimiter(
        max_per_window=research.max_research_per_window,
        window_seconds=research.window_seconds,
        daily_limit=research.daily_research_limit,
    )
    cache = ResearchCache(default_ttl=research.cache_ttl_seconds)
    gateway = BGGSearchGateway(transport, settings=settings.bgg, dictionary=dictionary)
    analyzer = ComplexityAnalyzer(
        threshold=research.complexity_threshold,
        dictionary=dictionary,
        force_directive=research.force_research_directive,
    )
    orchestrator = ResearchOrchestrator(
        analyzer=analyzer,
        limiter=limiter,
        cache=cache,
        research_service=ResearchService(gateway, max_sources=research.max_source_count, web_searcher=web_searcher),
        composer=composer,
        max_sources=research.max_source_count,
        cache_ttl=research.cache_ttl_seconds,
    )
    logger.info(
        f"Research services ready (window {research.max_research_per_window}/{research.window_seconds:.0f}s, "
        f"cache ttl {research.cache_ttl_seconds:.0f}s, web search {'on' if web_searcher else 'off'})"
    )
    return ResearchServices(
        limiter=limiter, cache=cache, gateway=gateway, orchestrator=orchestrator, web_searcher=web_searcher
    )
