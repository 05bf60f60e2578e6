"""
Gateway to the BoardGameGeek XML API.

Resolves a user-typed game name into ranked candidates by fanning out one
search per query variant, and fetches detail records by id.

Two call disciplines are used:
- fan-out searches run concurrently with jitter and a per-call timeout, and
  are joined with settle-all so one failing pattern never fails the batch
- sequential calls (detail fetches) are spaced apart and retried with
  linear backoff on Network and RateLimit failures
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

import aiohttp

from ..config import BGGSettings
from .bgg_xml import parse_game_detail, parse_search_response
from .errors import Err, ErrorKind, GatewayError, Ok, Result, classify_exception, classify_status
from .models import GameDetail, SearchResult
from .ranking import rank_and_deduplicate
from .resilience import RequestSpacer, retry_with_backoff, settle_all
from .search_patterns import generate_search_patterns
from .terminology import TermDictionary


class BGGTransport(Protocol):
    """Minimal HTTP GET used by the gateway."""

    async def get(self, path: str, params: Dict[str, str], timeout: float) -> Tuple[int, str]:
        ...

    async def close(self) -> None:
        ...


class AiohttpBGGTransport:
    """aiohttp-backed transport sharing one client session."""

    def __init__(self, base_url: str, user_agent: str, session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self._session = session
        self._owns_session = session is None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self.user_agent, "Accept": "application/xml"}
            )
            self._owns_session = True
        return self._session

    async def get(self, path: str, params: Dict[str, str], timeout: float) -> Tuple[int, str]:
        session = self._ensure_session()
        async with session.get(
            f"{self.base_url}/{path.lstrip('/')}",
            params=params,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as response:
            return response.status, await response.text()

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()


class BGGSearchGateway:
    """Resilient search and detail lookups against BoardGameGeek."""

    def __init__(
        self,
        transport: BGGTransport,
        settings: Optional[BGGSettings] = None,
        dictionary: Optional[TermDictionary] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
        spacer: Optional[RequestSpacer] = None,
    ):
        self.transport = transport
        self.settings = settings or BGGSettings()
        self.dictionary = dictionary or TermDictionary()
        self._sleep = sleep
        self._jitter = jitter
        self.spacer = spacer or RequestSpacer(self.settings.min_request_interval_seconds, sleep=sleep)
        self.logger = logging.getLogger(__name__)

    def generate_search_patterns(self, name: str) -> List[str]:
        return generate_search_patterns(name, self.dictionary)

    async def _fetch(self, path: str, params: Dict[str, str]) -> Tuple[int, str]:
        timeout = self.settings.request_timeout_seconds
        try:
            return await asyncio.wait_for(self.transport.get(path, params, timeout), timeout=timeout)
        except Exception as e:
            raise classify_exception(e) from e

    async def search(self, query: str, exact: bool = False) -> Result[List[SearchResult]]:
        """
        Run one upstream name search.

        Args:
            query: Query string sent verbatim
            exact: Ask upstream for exact name matches only

        Returns:
            Ok with parsed results, or Err classified by ErrorKind
        """
        params = {"query": query, "type": "boardgame"}
        if exact:
            params["exact"] = "1"
        try:
            status, body = await self._fetch("search", params)
        except GatewayError as e:
            return Err(e)

        error = classify_status(status, body)
        if error is not None:
            return Err(error)
        return parse_search_response(body)

    async def _search_pattern(self, pattern: str, exact: bool) -> List[SearchResult]:
        # Spread dispatch to avoid hitting upstream with a simultaneous burst
        delay = self._jitter() * self.settings.max_jitter_seconds
        if delay > 0:
            await self._sleep(delay)

        outcome = await self.search(pattern, exact=exact)
        if isinstance(outcome, Err):
            raise outcome.error
        return outcome.value

    async def execute_parallel_search(
        self,
        patterns: List[str],
        include_flexible: Optional[bool] = None,
    ) -> List[List[SearchResult]]:
        """
        Search every pattern concurrently and collect the successful result lists.

        Each pattern is searched in exact mode and, when enabled, flexible mode.
        Failed calls are logged and dropped.

        Args:
            patterns: Query strings to dispatch
            include_flexible: Override for the flexible-search setting

        Returns:
            One result list per successful call, in dispatch order

        Raises:
            GatewayError: If calls were dispatched and none succeeded; the kind
                is RateLimit when any call was throttled, else the first failure's
        """
        if include_flexible is None:
            include_flexible = self.settings.include_flexible_search

        calls: List[Tuple[str, bool]] = []
        for pattern in patterns:
            calls.append((pattern, True))
            if include_flexible:
                calls.append((pattern, False))

        outcomes = await settle_all(self._search_pattern(pattern, exact) for pattern, exact in calls)

        successes: List[List[SearchResult]] = []
        errors: List[GatewayError] = []
        for (pattern, exact), outcome in zip(calls, outcomes):
            if isinstance(outcome, Ok):
                successes.append(outcome.value)
                continue
            errors.append(outcome.error)
            level = logging.DEBUG if outcome.kind in (ErrorKind.NOT_FOUND, ErrorKind.PARSING) else logging.WARNING
            self.logger.log(
                level,
                f"Search for '{pattern}' ({'exact' if exact else 'flexible'}) failed: {outcome.error.message}",
                extra={'pattern': pattern, 'error_kind': outcome.kind.value},
            )

        self.logger.info(
            f"Parallel search finished: {len(successes)}/{len(calls)} calls succeeded, {len(errors)} failed"
        )
        if calls and not successes:
            kinds = {error.kind for error in errors}
            kind = ErrorKind.RATE_LIMIT if ErrorKind.RATE_LIMIT in kinds else errors[0].kind
            raise GatewayError(kind, f"All {len(calls)} search calls failed: {errors[0].message}")
        return successes

    def rank_and_deduplicate(self, all_results: List[List[SearchResult]], original_query: str) -> List[SearchResult]:
        return rank_and_deduplicate(
            all_results,
            original_query,
            max_results=self.settings.max_results,
            similarity_threshold=self.settings.similarity_threshold,
            aliases=self.dictionary.translate_title(original_query),
        )

    async def search_game_by_name(self, name: str) -> List[SearchResult]:
        """Resolve a user-typed name into ranked candidates."""
        patterns = self.generate_search_patterns(name)
        if not patterns:
            return []
        self.logger.debug(f"Searching '{name}' with {len(patterns)} patterns")
        batches = await self.execute_parallel_search(patterns)
        return self.rank_and_deduplicate(batches, name)

    async def _fetch_detail_once(self, game_id: int) -> Result[GameDetail]:
        await self.spacer.wait_turn()
        try:
            status, body = await self._fetch("thing", {"id": str(game_id), "type": "boardgame", "stats": "1"})
        except GatewayError as e:
            return Err(e)

        error = classify_status(status, body)
        if error is not None:
            return Err(error)
        return parse_game_detail(body, game_id)

    async def get_game_info(self, game_id: int) -> Result[GameDetail]:
        """
        Fetch the full record for one game.

        Returns:
            Ok(GameDetail), or Err with NotFound, RateLimit, Network, Parsing
            or Api after retries are exhausted
        """
        return await retry_with_backoff(
            lambda: self._fetch_detail_once(game_id),
            max_attempts=self.settings.max_retries,
            base_delay=self.settings.retry_base_delay_seconds,
            sleep=self._sleep,
            description=f"Detail fetch for game {game_id}",
        )

    async def close(self) -> None:
        await self.transport.close()
