"""
Async resilience primitives for calls to the external metadata service.

- retry_with_backoff: linear backoff retry that returns a Result
- settle_all: concurrent join that collects every outcome
- RequestSpacer: minimum spacing between sequential upstream calls
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, List, TypeVar

from .errors import Err, GatewayError, Ok, Result, classify_exception

T = TypeVar("T")

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def retry_with_backoff(
    operation: Callable[[], Awaitable[Result[T]]],
    max_attempts: int = 3,
    base_delay: float = 2.0,
    sleep: Sleep = asyncio.sleep,
    description: str = "operation",
) -> Result[T]:
    """
    Run an operation until it succeeds, fails terminally or runs out of attempts.

    The delay after failed attempt ``n`` is ``n * base_delay``. Only Network and
    RateLimit failures are retried; anything else is returned immediately.

    Args:
        operation: Zero-argument coroutine factory returning a Result. A raised
            GatewayError is treated the same as a returned Err.
        max_attempts: Retry ceiling, including the first attempt
        base_delay: Seconds multiplied by the attempt number between attempts
        sleep: Awaitable sleep, replaceable in tests
        description: Label used in log messages

    Returns:
        The first Ok, or the last Err observed
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 1
    while True:
        try:
            outcome = await operation()
        except GatewayError as exc:
            outcome = Err(exc)

        if isinstance(outcome, Ok):
            if attempt > 1:
                logger.info(f"{description} succeeded on attempt {attempt}")
            return outcome

        if not outcome.error.retryable:
            logger.debug(f"{description} failed with non-retryable {outcome.kind.value} error")
            return outcome
        if attempt == max_attempts:
            logger.warning(
                f"{description} failed after {attempt} attempts: {outcome.error.message}",
                extra={'error_kind': outcome.kind.value},
            )
            return outcome

        delay = attempt * base_delay
        logger.info(
            f"{description} attempt {attempt} failed ({outcome.kind.value}), retrying in {delay:.1f}s",
            extra={'error_kind': outcome.kind.value},
        )
        await sleep(delay)
        attempt += 1


async def settle_all(awaitables: Iterable[Awaitable[T]]) -> List[Result[T]]:
    """
    Await every awaitable concurrently and return one Result per input, in order.

    A failing awaitable never cancels its siblings. Exceptions are classified
    into GatewayErrors; cancellation of the caller still propagates.
    """
    outcomes = await asyncio.gather(*awaitables, return_exceptions=True)

    results: List[Result[T]] = []
    for outcome in outcomes:
        if isinstance(outcome, Exception):
            results.append(Err(classify_exception(outcome)))
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results.append(Ok(outcome))
    return results


class RequestSpacer:
    """Enforce a minimum interval between sequential calls to one upstream."""

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._next_slot = float("-inf")

    async def wait_turn(self) -> float:
        """Reserve the next free slot and sleep until it arrives.

        Returns:
            Seconds waited
        """
        # Reservation happens before the await so concurrent callers queue up
        now = self._clock()
        slot = max(now, self._next_slot)
        self._next_slot = slot + self.min_interval
        wait = slot - now
        if wait > 0:
            await self._sleep(wait)
        return wait
