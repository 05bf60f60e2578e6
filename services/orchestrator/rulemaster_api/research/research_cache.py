"""
In-memory cache of research results keyed by a normalized question fingerprint.

Expiry is lazy: an entry older than its ttl is dropped the next time it is
looked up. ``cleanup`` purges expired entries explicitly for housekeeping.
"""

import re
import time
from typing import Callable, Dict, List, Optional

from .models import CacheEntry, CacheStats, ResearchResult
from ..logging import get_research_logger

DEFAULT_TTL_SECONDS = 4 * 60 * 60
MAX_QUESTION_KEY_LENGTH = 100

_PUNCTUATION = re.compile(r"[?!.,]")
_WHITESPACE = re.compile(r"\s+")


def normalize_question(question: str) -> str:
    text = _PUNCTUATION.sub("", question.lower())
    text = _WHITESPACE.sub(" ", text).strip()
    return text[:MAX_QUESTION_KEY_LENGTH]


def normalize_game_title(game_title: str) -> str:
    return _WHITESPACE.sub("_", game_title.strip().lower())


def make_fingerprint(game_title: str, question: str) -> str:
    """Composite cache key for a (game, question) pair."""
    return f"{normalize_game_title(game_title)}:{normalize_question(question)}"


class ResearchCache:
    """TTL cache for research results."""

    def __init__(self, default_ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self.logger = get_research_logger("research_cache")

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, game_title: str, question: str) -> Optional[CacheEntry]:
        """Return a live entry for the pair, or None on a miss."""
        key = make_fingerprint(game_title, question)
        entry = self._entries.get(key)
        now = self._clock()

        if entry is None:
            self.misses += 1
            return None
        if entry.is_expired(now):
            del self._entries[key]
            self.misses += 1
            self.logger.debug(f"Cache entry expired: {key}")
            return None

        entry.hit_count += 1
        entry.last_accessed = now
        self.hits += 1
        return entry

    def set(
        self,
        game_title: str,
        question: str,
        result: ResearchResult,
        ttl: Optional[float] = None,
    ) -> CacheEntry:
        """Store or overwrite the entry for the pair."""
        key = make_fingerprint(game_title, question)
        entry = CacheEntry(
            key=key,
            game_title=game_title,
            question=question,
            summary=result.summary,
            sources=list(result.sources),
            candidates=list(result.candidates),
            created_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        self._entries[key] = entry
        self.logger.debug(f"Cached research result: {key}")
        return entry

    def _live_entries(self) -> List[CacheEntry]:
        now = self._clock()
        return [entry for entry in self._entries.values() if not entry.is_expired(now)]

    def get_by_game(self, game_title: str) -> List[CacheEntry]:
        prefix = f"{normalize_game_title(game_title)}:"
        return [entry for entry in self._live_entries() if entry.key.startswith(prefix)]

    def get_popular_queries(self, limit: int = 10) -> List[CacheEntry]:
        entries = sorted(self._live_entries(), key=lambda entry: entry.hit_count, reverse=True)
        return entries[:limit]

    def get_recent_queries(self, limit: int = 10) -> List[CacheEntry]:
        entries = sorted(self._live_entries(), key=lambda entry: entry.created_at, reverse=True)
        return entries[:limit]

    def clear_game_cache(self, game_title: str) -> int:
        prefix = f"{normalize_game_title(game_title)}:"
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            self.logger.info(f"Cleared {len(keys)} cached entries for {game_title}")
        return len(keys)

    def clear_all(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        self.logger.info(f"Cleared research cache ({count} entries)")
        return count

    def cleanup(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            self.logger.debug(f"Purged {len(expired)} expired cache entries")
        return len(expired)

    def get_stats(self) -> CacheStats:
        lookups = self.hits + self.misses
        created = [entry.created_at for entry in self._entries.values()]
        return CacheStats(
            size=len(self._entries),
            hits=self.hits,
            misses=self.misses,
            hit_rate=round(self.hits / lookups, 4) if lookups else 0.0,
            oldest_entry=min(created) if created else None,
            newest_entry=max(created) if created else None,
        )
