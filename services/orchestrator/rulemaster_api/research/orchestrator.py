"""
Research orchestration for game rules questions.

Per question: detect the force directive, analyze, record and check the
research quota, consult the cache, research on a miss, compose the prompt and
ask the LLM. Research failures never fail the question; they degrade to a
general-knowledge answer.
"""

import logging
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from .complexity_analyzer import ComplexityAnalyzer
from .composer import AnswerComposer, build_enhanced_prompt, build_terms_context
from .errors import ConfigurationError
from .models import (
    ComplexityScore, QuestionAnalysisV2, ResearchPriority, ResearchResponse, ResearchResult, ResearchStage,
)
from .research_cache import ResearchCache, make_fingerprint
from .research_limiter import ResearchLimiter
from .research_service import ResearchService
from ..logging import log_research_operation

ProgressCallback = Callable[[ResearchStage], Union[None, Awaitable[None]]]


class ResearchOrchestrator:
    """Answers game questions, researching when the question warrants it."""

    def __init__(
        self,
        analyzer: ComplexityAnalyzer,
        limiter: ResearchLimiter,
        cache: ResearchCache,
        research_service: ResearchService,
        composer: AnswerComposer,
        max_sources: int = 3,
        cache_ttl: Optional[float] = None,
    ):
        self.analyzer = analyzer
        self.limiter = limiter
        self.cache = cache
        self.research_service = research_service
        self.composer = composer
        self.max_sources = max_sources
        self.cache_ttl = cache_ttl
        self.logger = logging.getLogger(__name__)

    async def _classify(self, prompt: str) -> str:
        return await self.composer.ask_game_question("", prompt)

    def _admit(self, wanted: bool, priority: ResearchPriority) -> bool:
        """Record the question, then apply the quota and the priority gate."""
        allowed = self.limiter.check_and_record()
        if not (wanted and allowed):
            return False
        validation = self.limiter.validate_research_request(priority)
        if not validation.allowed:
            self.logger.info(f"Research refused for {priority.value} priority question: {validation.reason}")
        return validation.allowed

    async def _decide(
        self,
        game_title: str,
        question: str,
        use_v2_analysis: bool,
    ) -> Tuple[bool, str, Optional[ComplexityScore], Optional[QuestionAnalysisV2]]:
        forced, clean_question = self.analyzer.extract_force_directive(question)

        if forced:
            complexity = self.analyzer.analyze(question, game_title)
            return self._admit(True, complexity.priority), clean_question, complexity, None

        if use_v2_analysis:
            analysis = await self.analyzer.analyze_v2(clean_question, self._classify)
            # Record and check stay together after the last await
            allowed = self._admit(analysis.requires_research, analysis.priority)
            return allowed, clean_question, None, analysis

        complexity = self.analyzer.analyze(clean_question, game_title)
        self.logger.debug(self.analyzer.report(complexity))
        allowed = self._admit(complexity.should_trigger_research, complexity.priority)
        return allowed, clean_question, complexity, None

    async def _research(self, game_title: str, question: str) -> Tuple[Optional[ResearchResult], bool]:
        entry = self.cache.get(game_title, question)
        if entry is not None:
            self.limiter.record_cache_hit()
            log_research_operation(
                self.logger, "Research served from cache",
                game_title=game_title, fingerprint=entry.key, stage=ResearchStage.SEARCHING.value,
            )
            return entry.to_result(), True

        try:
            result = await self.research_service.perform_research(game_title, question)
        except ConfigurationError:
            raise
        except Exception as e:
            log_research_operation(
                self.logger, f"Research failed, answering without it: {e}",
                game_title=game_title, fingerprint=make_fingerprint(game_title, question),
                stage=ResearchStage.SEARCHING.value, level=logging.WARNING,
            )
            return None, False

        self.cache.set(game_title, question, result, ttl=self.cache_ttl)
        self.limiter.record_research_usage()
        return result, False

    async def ask_game_question_with_smart_research(
        self,
        game_title: str,
        question: str,
        on_research_start: Optional[Callable[[], None]] = None,
        use_v2_analysis: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ResearchResponse:
        """
        Answer a question, with external research when it is warranted and allowed.

        Args:
            game_title: Selected game
            question: User question, possibly carrying the force directive
            on_research_start: Called once when research begins
            use_v2_analysis: Use the keyword/LLM classifier instead of the score
            on_progress: Receives each stage transition

        Returns:
            ResearchResponse; sources and from_cache are set only when research was used

        Raises:
            AnswerComposerError: If the LLM call fails
            ConfigurationError: If a collaborator is misconfigured
        """
        stages: List[ResearchStage] = []

        async def advance(stage: ResearchStage) -> None:
            stages.append(stage)
            if on_progress is not None:
                outcome = on_progress(stage)
                if outcome is not None:
                    await outcome

        # Step 1: analyze and decide
        await advance(ResearchStage.ANALYZING)
        should_research, clean_question, complexity, analysis_v2 = await self._decide(
            game_title, question, use_v2_analysis
        )
        log_research_operation(
            self.logger, f"Research decision: {'research' if should_research else 'no research'}",
            game_title=game_title, stage=ResearchStage.ANALYZING.value,
        )

        # Step 2: cache or research
        research: Optional[ResearchResult] = None
        from_cache = False
        if should_research:
            if on_research_start is not None:
                on_research_start()
            await advance(ResearchStage.SEARCHING)
            research, from_cache = await self._research(game_title, clean_question)

        research_used = research is not None

        # Step 3: compose and ask
        await advance(ResearchStage.PROCESSING)
        terms_context = build_terms_context(game_title, self.analyzer.dictionary.glossary_for(game_title))
        prompt = build_enhanced_prompt(
            game_title,
            clean_question,
            terms_context,
            summary=research.summary if research is not None else None,
            sources=research.sources if research is not None else None,
            max_sources=self.max_sources,
        )
        answer = await self.composer.ask_game_question(game_title, prompt)

        await advance(ResearchStage.COMPLETED)
        return ResearchResponse(
            answer=answer,
            research_used=research_used,
            complexity=complexity,
            sources=list(research.sources) if research is not None else None,
            from_cache=from_cache if research_used else None,
            analysis_v2=analysis_v2,
            stages=stages,
        )
