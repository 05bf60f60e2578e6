"""
Research rate limiting.

A fixed-window counter bounds how many questions may trigger research per
window, and a daily ceiling bounds how many research runs actually hit the
network. State is in memory and lives as long as the limiter instance.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Dict

from .models import LimiterState, ResearchPriority, ResearchValidation, UsageStatus
from ..logging import get_research_logger

LOW_PRIORITY_DAILY_RATIO = 0.7


class ResearchLimiter:
    """Fixed-window quota for research runs plus a daily ceiling."""

    def __init__(
        self,
        max_per_window: int = 5,
        window_seconds: float = 3600.0,
        daily_limit: int = 80,
        clock: Callable[[], float] = time.time,
    ):
        if max_per_window < 1:
            raise ValueError("max_per_window must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.window_seconds = window_seconds
        self.daily_limit = daily_limit
        self._clock = clock
        self.logger = get_research_logger("research_limiter")

        now = clock()
        self.state = LimiterState(window_start=now, count=0, max_per_window=max_per_window)
        self._day = self._day_key(now)
        self.total_questions = 0
        self.daily_research_usage = 0
        self.cache_hits = 0

    @staticmethod
    def _day_key(timestamp: float) -> str:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).date().isoformat()

    def _roll(self, now: float) -> None:
        if now - self.state.window_start >= self.window_seconds:
            self.state.window_start = now
            self.state.count = 0
        day = self._day_key(now)
        if day != self._day:
            self.logger.info(f"Research quota reset for {day}")
            self._day = day
            self.daily_research_usage = 0
            self.cache_hits = 0

    def record_question_asked(self) -> None:
        """Count a question against the current window, starting a new window if expired."""
        self._roll(self._clock())
        self.state.count += 1
        self.total_questions += 1

    def can_perform_research(self) -> bool:
        """Whether the current window and the daily ceiling still admit research.

        The question being decided must already be recorded, so a window
        admits exactly ``max_per_window`` research-eligible questions.
        """
        self._roll(self._clock())
        within_window = self.state.count <= self.state.max_per_window
        within_day = self.daily_research_usage < self.daily_limit
        if not within_window:
            self.logger.info(
                f"Research window quota exhausted ({self.state.count}/{self.state.max_per_window})"
            )
        elif not within_day:
            self.logger.info(f"Daily research ceiling reached ({self.daily_research_usage}/{self.daily_limit})")
        return within_window and within_day

    def check_and_record(self) -> bool:
        """Record a question and check the quota in one uninterrupted step."""
        self.record_question_asked()
        return self.can_perform_research()

    def record_research_usage(self) -> None:
        self._roll(self._clock())
        self.daily_research_usage += 1

    def record_cache_hit(self) -> None:
        self._roll(self._clock())
        self.cache_hits += 1

    def get_remaining_quota(self) -> Dict[str, int]:
        self._roll(self._clock())
        return {
            "daily": max(0, self.daily_limit - self.daily_research_usage),
            "window": max(0, self.state.max_per_window - self.state.count),
        }

    def get_usage_status(self) -> UsageStatus:
        remaining = self.get_remaining_quota()
        return UsageStatus(
            date=self._day,
            window_start=self.state.window_start,
            window_count=self.state.count,
            max_per_window=self.state.max_per_window,
            window_remaining=remaining["window"],
            total_questions=self.total_questions,
            daily_research_usage=self.daily_research_usage,
            daily_limit=self.daily_limit,
            daily_remaining=remaining["daily"],
            cache_hits=self.cache_hits,
            can_perform_research=remaining["window"] > 0 and remaining["daily"] > 0,
        )

    def generate_usage_report(self) -> str:
        status = self.get_usage_status()
        lookups = status.daily_research_usage + status.cache_hits
        hit_rate = (status.cache_hits / lookups * 100) if lookups else 0.0
        return "\n".join([
            f"Research usage for {status.date}:",
            f"- questions asked: {status.total_questions}",
            f"- research runs today: {status.daily_research_usage}/{status.daily_limit}",
            f"- current window: {status.window_count}/{status.max_per_window}",
            f"- cache hits: {status.cache_hits} ({hit_rate:.1f}% of lookups)",
            f"- research available: {'yes' if status.can_perform_research else 'no'}",
        ])

    def validate_research_request(self, priority: ResearchPriority) -> ResearchValidation:
        """
        Pre-flight check for a research request of the given priority.

        Runs after the question is recorded, so the window check matches
        can_perform_research. Low-priority requests are refused once the daily
        usage passes LOW_PRIORITY_DAILY_RATIO of the ceiling.
        """
        self._roll(self._clock())
        if self.daily_research_usage >= self.daily_limit:
            return ResearchValidation(
                allowed=False,
                reason="Daily research limit reached",
                suggestion="Answer from general knowledge or retry tomorrow",
            )
        if self.state.count > self.state.max_per_window:
            return ResearchValidation(
                allowed=False,
                reason="Research quota for the current window is used up",
                suggestion="Retry after the current window closes",
            )

        usage_ratio = self.daily_research_usage / self.daily_limit
        if priority is ResearchPriority.LOW and usage_ratio > LOW_PRIORITY_DAILY_RATIO:
            return ResearchValidation(
                allowed=False,
                reason="Low-priority research is paused to preserve the daily quota",
                suggestion="Ask a more specific question to qualify for research",
            )
        return ResearchValidation(allowed=True)
