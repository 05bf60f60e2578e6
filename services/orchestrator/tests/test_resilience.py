"""
Tests for retry, settlement and request spacing primitives.
"""

import asyncio

import aiohttp
import pytest

from fakes import FakeClock, SleepRecorder
from rulemaster_api.research.errors import (
    Err,
    ErrorKind,
    GatewayError,
    Ok,
    classify_exception,
    classify_status,
)
from rulemaster_api.research.resilience import RequestSpacer, retry_with_backoff, settle_all


class Scripted:
    """Zero-argument operation that replays a list of outcomes."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _err(kind):
    return Err(GatewayError(kind, kind.value))


class TestRetryWithBackoff:
    """Test cases for linear backoff retry."""

    @pytest.mark.asyncio
    async def test_first_success_does_not_sleep(self):
        sleeps = SleepRecorder()
        operation = Scripted(Ok("detail"))

        result = await retry_with_backoff(operation, sleep=sleeps)

        assert result == Ok("detail")
        assert operation.calls == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_network_errors_retry_with_linear_delay(self):
        sleeps = SleepRecorder()
        operation = Scripted(_err(ErrorKind.NETWORK), _err(ErrorKind.NETWORK), Ok("detail"))

        result = await retry_with_backoff(operation, max_attempts=3, base_delay=2.0, sleep=sleeps)

        assert result == Ok("detail")
        assert operation.calls == 3
        assert sleeps.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        sleeps = SleepRecorder()
        operation = Scripted(_err(ErrorKind.RATE_LIMIT), Ok(1))

        result = await retry_with_backoff(operation, sleep=sleeps)

        assert result == Ok(1)
        assert sleeps.delays == [2.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", [ErrorKind.NOT_FOUND, ErrorKind.PARSING, ErrorKind.API])
    async def test_terminal_errors_are_not_retried(self, kind):
        sleeps = SleepRecorder()
        operation = Scripted(_err(kind), Ok("unused"))

        result = await retry_with_backoff(operation, sleep=sleeps)

        assert isinstance(result, Err)
        assert result.kind is kind
        assert operation.calls == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        sleeps = SleepRecorder()
        operation = Scripted(*[_err(ErrorKind.NETWORK)] * 3)

        result = await retry_with_backoff(operation, max_attempts=3, base_delay=1.5, sleep=sleeps)

        assert isinstance(result, Err)
        assert result.kind is ErrorKind.NETWORK
        assert operation.calls == 3
        assert sleeps.delays == [1.5, 3.0]

    @pytest.mark.asyncio
    async def test_raised_gateway_error_counts_as_failure(self):
        sleeps = SleepRecorder()
        operation = Scripted(GatewayError(ErrorKind.NETWORK, "reset"), Ok("ok"))

        result = await retry_with_backoff(operation, sleep=sleeps)

        assert result == Ok("ok")

    @pytest.mark.asyncio
    async def test_single_attempt_returns_its_error(self):
        sleeps = SleepRecorder()
        operation = Scripted(_err(ErrorKind.RATE_LIMIT))

        result = await retry_with_backoff(operation, max_attempts=1, sleep=sleeps)

        assert isinstance(result, Err)
        assert result.kind is ErrorKind.RATE_LIMIT
        assert operation.calls == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            await retry_with_backoff(Scripted(Ok(1)), max_attempts=0)


class TestSettleAll:

    @pytest.mark.asyncio
    async def test_one_failure_does_not_cancel_siblings(self):
        async def succeed(value):
            await asyncio.sleep(0)
            return value

        async def fail():
            raise aiohttp.ClientConnectionError("refused")

        results = await settle_all([succeed(1), fail(), succeed(3)])

        assert results[0] == Ok(1)
        assert isinstance(results[1], Err)
        assert results[1].kind is ErrorKind.NETWORK
        assert results[2] == Ok(3)

    @pytest.mark.asyncio
    async def test_preserves_classified_gateway_errors(self):
        async def rate_limited():
            raise GatewayError(ErrorKind.RATE_LIMIT, "slow down", status_code=429)

        results = await settle_all([rate_limited()])

        assert results[0].kind is ErrorKind.RATE_LIMIT
        assert results[0].error.status_code == 429

    @pytest.mark.asyncio
    async def test_empty_input(self):
        assert await settle_all([]) == []


class TestRequestSpacer:

    @pytest.mark.asyncio
    async def test_first_call_is_immediate(self):
        sleeps = SleepRecorder()
        spacer = RequestSpacer(1.0, clock=FakeClock(), sleep=sleeps)

        assert await spacer.wait_turn() == 0
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_back_to_back_calls_are_spaced(self):
        sleeps = SleepRecorder()
        spacer = RequestSpacer(1.0, clock=FakeClock(), sleep=sleeps)

        await spacer.wait_turn()
        await spacer.wait_turn()
        await spacer.wait_turn()

        assert sleeps.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_no_wait_once_interval_has_passed(self):
        sleeps = SleepRecorder()
        clock = FakeClock()
        spacer = RequestSpacer(1.0, clock=clock, sleep=sleeps)

        await spacer.wait_turn()
        clock.advance(1.5)
        await spacer.wait_turn()

        assert sleeps.delays == []


class TestClassification:

    @pytest.mark.parametrize("status,kind", [
        (429, ErrorKind.RATE_LIMIT),
        (404, ErrorKind.NOT_FOUND),
        (500, ErrorKind.API),
        (503, ErrorKind.API),
    ])
    def test_classify_status(self, status, kind):
        error = classify_status(status, "body")

        assert error.kind is kind
        assert error.status_code == status

    def test_success_status_is_not_an_error(self):
        assert classify_status(200) is None

    @pytest.mark.parametrize("exc,kind", [
        (asyncio.TimeoutError(), ErrorKind.NETWORK),
        (aiohttp.ServerDisconnectedError(), ErrorKind.NETWORK),
        (ConnectionResetError(), ErrorKind.NETWORK),
        (RuntimeError("boom"), ErrorKind.API),
    ])
    def test_classify_exception(self, exc, kind):
        error = classify_exception(exc)

        assert error.kind is kind
        assert error.original is exc

    def test_only_network_and_rate_limit_are_retryable(self):
        retryable = {kind for kind in ErrorKind if GatewayError(kind, "x").retryable}

        assert retryable == {ErrorKind.NETWORK, ErrorKind.RATE_LIMIT}
