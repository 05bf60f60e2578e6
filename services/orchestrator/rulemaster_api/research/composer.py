"""
Answer composition contract and prompt assembly.

The LLM itself is an external collaborator behind ``AnswerComposer``; this
module only builds the text it receives.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from .terminology import GameTerm

SYSTEM_PROMPT = (
    "You are RuleMaster, a board game rules expert. Answer the user's rules "
    "question accurately and concisely. When a rule is ambiguous, say so and "
    "explain the most common interpretation."
)

MAX_GLOSSARY_TERMS = 10


class AnswerComposer(ABC):
    """Text-in, text-out LLM backend."""

    @abstractmethod
    async def ask_game_question(self, game_title: str, prompt: str) -> str:
        """Return the model's answer for a fully assembled prompt.

        Raises:
            AnswerComposerError: If the backend rejects or fails the request
        """


def build_terms_context(game_title: str, terms: Sequence[GameTerm]) -> str:
    if not terms:
        return "\nNo game-specific glossary is available; use general rules knowledge.\n"
    lines = [
        f"- {term.korean} ({term.english}): {term.description}"
        for term in list(terms)[:MAX_GLOSSARY_TERMS]
    ]
    return f"\nKey terms for {game_title}:\n" + "\n".join(lines) + "\n"


def build_research_context(summary: str, sources: List[str], max_sources: int) -> str:
    cited = "\n".join(f"{i}. {url}" for i, url in enumerate(sources[:max_sources], start=1))
    context = (
        "\nResearch notes gathered for this question:\n"
        "---\n"
        f"{summary}\n"
        "---\n"
        "Answering rules:\n"
        "1. Use the research notes as the primary evidence and state uncertainty explicitly.\n"
        "2. Attribute claims, e.g. \"according to the sources found\".\n"
        "3. Where the notes are thin or contradictory, combine them with general rules knowledge.\n"
    )
    if cited:
        context += f"\nSources consulted:\n{cited}\n"
    return context


FALLBACK_CONTEXT = (
    "\nGeneral answer mode: no external research is available for this question. "
    "Answer from board game expertise, explaining the relevant mechanisms and rules concretely.\n"
)


def build_enhanced_prompt(
    game_title: str,
    question: str,
    terms_context: str,
    summary: Optional[str] = None,
    sources: Optional[List[str]] = None,
    max_sources: int = 3,
) -> str:
    """Assemble the full prompt; research context is used only when a summary is given."""
    prompt = SYSTEM_PROMPT + terms_context
    if summary is not None:
        prompt += build_research_context(summary, sources or [], max_sources)
    else:
        prompt += FALLBACK_CONTEXT
    prompt += f"\nGame title: {game_title}\nUser question: {question}"
    return prompt
