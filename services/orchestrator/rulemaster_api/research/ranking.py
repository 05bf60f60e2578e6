"""
Relevance ranking and deduplication of merged search results.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from .models import SearchResult

EXACT_SCORE = 1000
PREFIX_SCORE = 800
WORD_PREFIX_SCORE = 700
SUBSTRING_SCORE = 600
WORD_OVERLAP_BASE = 400
WORD_OVERLAP_SPAN = 100
FUZZY_SCALE = 400

DEFAULT_SIMILARITY_THRESHOLD = 0.7
DEFAULT_MAX_RESULTS = 10


def similarity(a: str, b: str) -> float:
    """Normalized edit-distance similarity in [0, 1]."""
    return Levenshtein.normalized_similarity(a, b)


def relevance_score(name: str, query: str, similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> Optional[float]:
    """
    Score how well a result name matches the original query.

    Lexical tiers, best first: exact, prefix, word prefix, substring and
    per-word overlap proportional to the share of query words found. Names
    matching no tier fall back to edit-distance similarity and are excluded
    (None) below the threshold.
    """
    name_l = name.strip().lower()
    query_l = query.strip().lower()
    if not name_l or not query_l:
        return None

    if name_l == query_l:
        return EXACT_SCORE
    if name_l.startswith(query_l):
        return PREFIX_SCORE
    if any(word.startswith(query_l) for word in name_l.split()):
        return WORD_PREFIX_SCORE
    if query_l in name_l:
        return SUBSTRING_SCORE

    query_words = query_l.split()
    matched = [word for word in query_words if word in name_l]
    if matched:
        return WORD_OVERLAP_BASE + WORD_OVERLAP_SPAN * len(matched) / len(query_words)

    ratio = similarity(name_l, query_l)
    if ratio < similarity_threshold:
        return None
    return FUZZY_SCALE * ratio


def deduplicate(results: Iterable[SearchResult]) -> List[SearchResult]:
    """Drop repeated external ids; the first occurrence wins."""
    seen = set()
    unique: List[SearchResult] = []
    for result in results:
        if result.external_id in seen:
            continue
        seen.add(result.external_id)
        unique.append(result)
    return unique


def rank_and_deduplicate(
    all_results: Iterable[Iterable[SearchResult]],
    original_query: str,
    max_results: int = DEFAULT_MAX_RESULTS,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    aliases: Sequence[str] = (),
) -> List[SearchResult]:
    """
    Merge per-pattern result lists into one ranked candidate list.

    Args:
        all_results: Result lists from every successful pattern search
        original_query: Name the user typed
        max_results: Cap on returned candidates
        similarity_threshold: Minimum similarity for names matching no lexical tier
        aliases: Known translations of the query; a result keeps its best score
            across the query and its aliases

    Returns:
        Candidates sorted by relevance, shorter names and dated entries first on ties
    """
    merged = deduplicate(result for batch in all_results for result in batch)
    queries = [original_query, *aliases]

    scored: List[Tuple[float, int, int, int, SearchResult]] = []
    for index, result in enumerate(merged):
        scores = [
            score for score in (relevance_score(result.name, query, similarity_threshold) for query in queries)
            if score is not None
        ]
        if not scores:
            continue
        score = max(scores)
        has_year = 0 if result.year_published is not None else 1
        scored.append((-score, len(result.name), has_year, index, result))

    scored.sort(key=lambda item: item[:4])
    return [item[4] for item in scored[:max_results]]
