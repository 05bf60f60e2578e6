"""
Question complexity analysis.

Decides whether a rules question is specialised enough to justify an external
research run. Two analyzers live here:

- ``analyze``: weighted keyword/length/terminology heuristic producing a
  ComplexityScore in [0, 100]
- ``analyze_v2``: cheap keyword classification into rule/strategy/exception,
  optionally refined by an LLM classifier when research looks necessary
"""

import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from .models import ComplexityScore, QuestionAnalysisV2, QuestionType, ResearchPriority
from .terminology import TermDictionary, contains_term

FORCE_RESEARCH_DIRECTIVE = "[FORCE_RESEARCH]"

MIN_QUESTION_LENGTH = 15
MAX_LENGTH_SCORE = 3
DEFAULT_THRESHOLD = 8
HIGH_PRIORITY_SCORE = 15
MAX_SCORE = 100

GAME_ELEMENT_WEIGHT = 2
PRIORITY_GAME_BONUS = 3
RULE_SPECIFIC_WEIGHT = 2

# (category, weight, vocabulary)
KEYWORD_CATEGORIES: Tuple[Tuple[str, int, Tuple[str, ...]], ...] = (
    ("exception", 3, (
        "구체적으로", "정확히", "상세히", "예외", "특수", "동시에", "충돌", "애매", "설명해줘", "알려줘",
        "exactly", "specifically", "in detail", "exception", "edge case", "conflict",
        "simultaneous", "at the same time", "override", "what happens if", "what happens when",
    )),
    ("strategy", 2, (
        "전략", "조합", "추천", "최적", "효율", "팁", "카드", "능력", "스킬", "액션",
        "strategy", "combo", "synergy", "optimal", "best way", "recommend", "tips", "card", "cards",
    )),
    ("rules", 1, (
        "규칙", "방법", "가능", "안됨", "맞나", "되나", "어떻게", "왜", "언제",
        "rule", "rules", "allowed", "legal", "can i", "may i", "must", "how does", "why", "when",
    )),
)

RULE_SPECIFIC_TERMS: Tuple[str, ...] = (
    "효과", "스킬", "능력", "관철", "발동", "조건", "상황", "예외",
    "작동", "처리", "순서", "타이밍", "우선순위", "중첩",
    "effect", "ability", "trigger", "condition", "resolve", "order",
    "timing", "priority", "stack", "interaction",
)

# Keyword-first classifier vocabulary
BASIC_RULE_TERMS: Tuple[str, ...] = (
    "몇 명", "몇명", "몇 라운드", "게임 시간", "턴 순서", "준비", "셋업",
    "기본 규칙", "어떻게 해", "시작", "초기", "게임 방법",
    "플레이 방법", "룰 요약", "개요", "인원수", "플레이어 수",
    "how many players", "game time", "how to play", "basic rules",
    "setup", "set up", "how to start", "player count",
)

COMPLEX_RULE_TERMS: Tuple[str, ...] = (
    "카드 효과", "특수 능력", "관철", "상호작용", "조합", "우선순위",
    "예외", "특별", "특수 상황", "애매한", "모호한", "정확히",
    "동시에", "겹칠 때", "충돌", "어떤 순서", "타이밍", "시점", "언제",
    "interaction", "combination", "priority", "timing", "when exactly",
    "specific card", "ability", "trigger", "exception", "conflict",
)

STRATEGY_TERMS: Tuple[str, ...] = (
    "전략", "팁", "추천", "최고", "최적", "효율", "유리한", "더 나은",
    "strategy", "best", "optimal", "recommend", "better choice", "tip", "advice",
)

SHORT_QUESTION_LENGTH = 20
LONG_QUESTION_LENGTH = 50
LLM_CONFIDENCE = 0.95
LLM_FALLBACK_CONFIDENCE = 0.7

Classifier = Callable[[str], Awaitable[str]]


def extract_force_directive(question: str, directive: str = FORCE_RESEARCH_DIRECTIVE) -> Tuple[bool, str]:
    """Detect and strip the force-research directive.

    Returns:
        Tuple of (directive present, question with every occurrence removed)
    """
    if directive not in question:
        return False, question
    cleaned = " ".join(question.replace(directive, " ").split())
    return True, cleaned


def build_classification_prompt(question: str) -> str:
    return (
        "Classify the following board game question into exactly one category.\n"
        "- rule: basic rules, setup, turn structure, how to play\n"
        "- strategy: which choice is better or how to play efficiently\n"
        "- exception: specific card effects, interactions, ambiguous rule readings\n"
        "Detailed questions about a named card, ability or mechanism are always exception.\n\n"
        f"Question: \"{question}\"\n\n"
        "Answer format:\n"
        "Classification: rule|strategy|exception\n"
        "Reason: one sentence"
    )


def parse_classification(text: str) -> QuestionType:
    lowered = text.lower()
    if "classification: rule" in lowered or "룰 설명" in text:
        return QuestionType.RULE
    if "classification: strategy" in lowered or "전략 판단" in text:
        return QuestionType.STRATEGY
    return QuestionType.EXCEPTION


def _matches(text: str, vocabulary: Sequence[str]) -> List[str]:
    return [term for term in vocabulary if contains_term(text, term)]


class ComplexityAnalyzer:
    """Scores questions for research need."""

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        dictionary: Optional[TermDictionary] = None,
        force_directive: str = FORCE_RESEARCH_DIRECTIVE,
    ):
        self.threshold = threshold
        self.dictionary = dictionary or TermDictionary()
        self.force_directive = force_directive
        self.logger = logging.getLogger(__name__)

    def extract_force_directive(self, question: str) -> Tuple[bool, str]:
        return extract_force_directive(question, self.force_directive)

    def analyze(self, question: str, game_title: Optional[str] = None) -> ComplexityScore:
        """
        Score a question's need for external research.

        Args:
            question: Raw question text, possibly carrying the force directive
            game_title: Selected game, used for the priority-game bonus

        Returns:
            ComplexityScore with components, verdict and ordered reasoning
        """
        forced, question = self.extract_force_directive(question)
        if forced:
            return ComplexityScore(
                total_score=0,
                should_trigger_research=True,
                reasoning=("force-research directive present; scoring skipped",),
                priority=ResearchPriority.HIGH,
                forced=True,
            )

        text = question.strip()
        if not text:
            return ComplexityScore(
                total_score=0,
                should_trigger_research=False,
                reasoning=("empty question",),
            )

        reasoning: List[str] = []

        # Step 1: length
        length_score = 0
        if len(text) >= MIN_QUESTION_LENGTH:
            length_score = min((len(text) - MIN_QUESTION_LENGTH) // 5, MAX_LENGTH_SCORE)
            reasoning.append(f"question length {len(text)} chars: +{length_score}")
        else:
            reasoning.append(f"question is short ({len(text)} chars)")

        # Step 2: weighted vocabulary
        keyword_score = 0
        for category, weight, vocabulary in KEYWORD_CATEGORIES:
            found = _matches(text, vocabulary)
            if found:
                keyword_score += weight * len(found)
                reasoning.append(f"{category} keywords {', '.join(found)}: +{weight * len(found)}")
        if keyword_score == 0:
            reasoning.append("no complexity keywords")

        # Step 3: game terminology
        elements = self.dictionary.find_game_terms(text)
        game_element_score = GAME_ELEMENT_WEIGHT * len(elements)
        if elements:
            reasoning.append(f"game elements {', '.join(elements)}: +{game_element_score}")

        # Step 4: titles known for intricate rules
        game_priority_bonus = PRIORITY_GAME_BONUS if self.dictionary.is_priority_game(game_title) else 0
        if game_priority_bonus:
            reasoning.append(f"research-priority game: +{game_priority_bonus}")

        # Step 5: rule-mechanics vocabulary
        rule_terms = _matches(text, RULE_SPECIFIC_TERMS)
        rule_specific_bonus = RULE_SPECIFIC_WEIGHT * len(rule_terms)
        if rule_terms:
            reasoning.append(f"rule-specific terms {', '.join(rule_terms)}: +{rule_specific_bonus}")

        raw_total = length_score + keyword_score + game_element_score + game_priority_bonus + rule_specific_bonus
        total = max(0, min(MAX_SCORE, raw_total))
        should_trigger = total >= self.threshold
        priority = self._priority_for(total)
        reasoning.append(
            f"total {total} vs threshold {self.threshold}: {'research' if should_trigger else 'no research'}"
        )

        self.logger.debug(
            f"Complexity {total} (length={length_score}, keywords={keyword_score}, "
            f"elements={game_element_score}, bonus={game_priority_bonus}, rules={rule_specific_bonus})"
        )

        return ComplexityScore(
            total_score=total,
            should_trigger_research=should_trigger,
            reasoning=tuple(reasoning),
            priority=priority,
            length_score=length_score,
            keyword_score=keyword_score,
            game_element_score=game_element_score,
            game_priority_bonus=game_priority_bonus,
            rule_specific_bonus=rule_specific_bonus,
        )

    def _priority_for(self, total: int) -> ResearchPriority:
        if total >= max(HIGH_PRIORITY_SCORE, self.threshold):
            return ResearchPriority.HIGH
        if total >= self.threshold:
            return ResearchPriority.MEDIUM
        return ResearchPriority.LOW

    def classify_cheap(self, question: str) -> QuestionAnalysisV2:
        """Keyword-only classification, no external calls."""
        text = question.strip()
        basic = _matches(text, BASIC_RULE_TERMS)
        if basic or len(text) < SHORT_QUESTION_LENGTH:
            return QuestionAnalysisV2(
                question_type=QuestionType.RULE,
                requires_research=False,
                confidence=0.95 if basic else 0.8,
                reasoning="basic rule keywords detected" if basic else "short question, likely a basic rule",
            )

        complex_terms = _matches(text, COMPLEX_RULE_TERMS)
        if complex_terms:
            return QuestionAnalysisV2(
                question_type=QuestionType.EXCEPTION,
                requires_research=True,
                confidence=round(min(0.9, 0.7 + 0.1 * len(complex_terms)), 2),
                reasoning=f"{len(complex_terms)} complex rule keywords: {', '.join(complex_terms[:2])}",
            )

        strategy_terms = _matches(text, STRATEGY_TERMS)
        if strategy_terms:
            return QuestionAnalysisV2(
                question_type=QuestionType.STRATEGY,
                requires_research=True,
                confidence=0.85,
                reasoning=f"strategy keywords: {', '.join(strategy_terms[:2])}",
            )

        if len(text) > LONG_QUESTION_LENGTH:
            return QuestionAnalysisV2(
                question_type=QuestionType.EXCEPTION,
                requires_research=True,
                confidence=0.7,
                reasoning="long question, likely a complex situation",
            )

        return QuestionAnalysisV2(
            question_type=QuestionType.RULE,
            requires_research=True,
            confidence=0.6,
            reasoning="unclear classification, research included",
        )

    async def analyze_v2(self, question: str, classifier: Optional[Classifier] = None) -> QuestionAnalysisV2:
        """
        Classify a question, consulting the LLM only when research looks needed.

        Args:
            question: Question text without the force directive
            classifier: Coroutine sending a prompt to an LLM and returning its text

        Returns:
            The LLM-refined analysis, or the keyword analysis when no classifier
            is available or the classifier fails
        """
        cheap = self.classify_cheap(question)
        if not cheap.requires_research or classifier is None:
            return cheap

        try:
            raw = await classifier(build_classification_prompt(question))
        except Exception as e:
            self.logger.warning(f"LLM question classification failed, using keyword result: {e}")
            return QuestionAnalysisV2(
                question_type=cheap.question_type,
                requires_research=cheap.requires_research,
                confidence=LLM_FALLBACK_CONFIDENCE,
                reasoning=f"{cheap.reasoning} (LLM classification unavailable)",
            )

        question_type = parse_classification(raw)
        return QuestionAnalysisV2(
            question_type=question_type,
            requires_research=question_type is not QuestionType.RULE,
            confidence=LLM_CONFIDENCE,
            reasoning=" ".join(raw.split()),
            refined_by_llm=True,
        )

    def report(self, score: ComplexityScore) -> str:
        """Human-readable dump of a score for debug logging."""
        lines = [
            "Complexity analysis:",
            f"- total: {score.total_score}",
            f"- length: {score.length_score}",
            f"- keywords: {score.keyword_score}",
            f"- game elements: {score.game_element_score}",
            f"- priority game bonus: {score.game_priority_bonus}",
            f"- rule-specific bonus: {score.rule_specific_bonus}",
            f"- research: {'YES' if score.should_trigger_research else 'NO'}",
            f"- priority: {score.priority.value}",
            f"- reasoning: {' | '.join(score.reasoning)}",
        ]
        return "\n".join(lines)
