"""
Research orchestration: complexity analysis, throttling, caching and
BoardGameGeek lookups behind a single orchestrator.
"""

from .complexity_analyzer import ComplexityAnalyzer
from .bgg_gateway import AiohttpBGGTransport, BGGSearchGateway
from .orchestrator import ResearchOrchestrator
from .research_cache import ResearchCache
from .research_limiter import ResearchLimiter
from .research_service import ResearchService

__all__ = [
    "AiohttpBGGTransport",
    "BGGSearchGateway",
    "ComplexityAnalyzer",
    "ResearchCache",
    "ResearchLimiter",
    "ResearchOrchestrator",
    "ResearchService",
]
