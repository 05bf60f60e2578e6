"""
Tests for the BoardGameGeek gateway: fan-out search, ranking and detail fetches.
"""

import asyncio
import logging

import aiohttp
import pytest

from fakes import FakeClock, FakeTransport, search_xml, thing_xml
from rulemaster_api.config import BGGSettings
from rulemaster_api.research.bgg_gateway import BGGSearchGateway
from rulemaster_api.research.errors import Err, ErrorKind, GatewayError, Ok
from rulemaster_api.research.resilience import RequestSpacer

ARK_NOVA = (342942, "Ark Nova", 2021)


class SlowTransport(FakeTransport):
    """Never answers the queries listed in ``stalled``."""

    def __init__(self, stalled, **kwargs):
        super().__init__(**kwargs)
        self.stalled = set(stalled)

    async def get(self, path, params, timeout):
        if params.get("query") in self.stalled:
            await asyncio.sleep(60)
        return await super().get(path, params, timeout)


class TestSearch:

    @pytest.mark.asyncio
    async def test_exact_flag_is_sent_only_in_exact_mode(self, make_gateway):
        transport = FakeTransport()
        gateway = make_gateway(transport)

        await gateway.search("Catan", exact=True)
        await gateway.search("Catan")

        assert transport.search_calls == [
            {"query": "Catan", "type": "boardgame", "exact": "1"},
            {"query": "Catan", "type": "boardgame"},
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response,kind", [
        ((429, ""), ErrorKind.RATE_LIMIT),
        ((500, "Internal error"), ErrorKind.API),
        ((200, "<html>maintenance</html>"), ErrorKind.PARSING),
        (aiohttp.ClientConnectionError("refused"), ErrorKind.NETWORK),
    ])
    async def test_failures_are_classified(self, make_gateway, response, kind):
        gateway = make_gateway(FakeTransport(search={"Catan": response}))

        outcome = await gateway.search("Catan")

        assert isinstance(outcome, Err)
        assert outcome.kind is kind


class TestParallelSearch:

    @pytest.mark.asyncio
    async def test_partial_failures_keep_successful_results(self, make_gateway, caplog):
        transport = FakeTransport(search={
            "Ark Nova": (200, search_xml(ARK_NOVA)),
            "ArkNova": aiohttp.ClientConnectionError("refused"),
            "Ark-Nova": (429, ""),
            "Nova": (200, search_xml((42, "Nova Luna", 2019))),
        })
        gateway = make_gateway(transport)

        with caplog.at_level(logging.WARNING):
            batches = await gateway.execute_parallel_search(
                ["Ark Nova", "ArkNova", "Ark-Nova", "Nova"], include_flexible=False
            )

        names = [result.name for batch in batches for result in batch]
        assert names == ["Ark Nova", "Nova Luna"]
        assert len(batches) == 2
        assert "ArkNova" in caplog.text

    @pytest.mark.asyncio
    async def test_exact_and_flexible_calls_per_pattern(self, make_gateway, sleeps):
        transport = FakeTransport()
        gateway = make_gateway(transport)

        await gateway.execute_parallel_search(["Catan", "Catane"])

        assert len(transport.search_calls) == 4
        assert sum(1 for params in transport.search_calls if params.get("exact") == "1") == 2
        # jitter of 0.5 * max 0.5s per call
        assert sleeps.delays == [0.25] * 4

    @pytest.mark.asyncio
    async def test_flexible_search_can_be_disabled_in_settings(self, make_gateway):
        transport = FakeTransport()
        gateway = make_gateway(transport, BGGSettings(include_flexible_search=False, max_jitter_seconds=0))

        await gateway.execute_parallel_search(["Catan"])

        assert transport.search_calls == [{"query": "Catan", "type": "boardgame", "exact": "1"}]

    @pytest.mark.asyncio
    async def test_stalled_call_times_out_without_blocking_others(self, make_gateway):
        transport = SlowTransport(
            stalled={"ArkNova"},
            search={"Ark Nova": (200, search_xml(ARK_NOVA))},
        )
        gateway = make_gateway(transport, BGGSettings(request_timeout_seconds=0.05, max_jitter_seconds=0))

        batches = await gateway.execute_parallel_search(["Ark Nova", "ArkNova"], include_flexible=False)

        assert [[r.name for r in batch] for batch in batches] == [["Ark Nova"]]

    @pytest.mark.asyncio
    async def test_all_failures_raise(self, make_gateway):
        transport = FakeTransport(search={"Catan": (503, "down")})
        gateway = make_gateway(transport)

        with pytest.raises(GatewayError) as exc_info:
            await gateway.execute_parallel_search(["Catan"])

        assert exc_info.value.kind is ErrorKind.API
        assert "All 2 search calls failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_all_failures_report_rate_limit_when_throttled(self, make_gateway):
        transport = FakeTransport(search={
            ("Catan", True): aiohttp.ClientConnectionError("reset"),
            ("Catan", False): (429, "slow down"),
        })
        gateway = make_gateway(transport)

        with pytest.raises(GatewayError) as exc_info:
            await gateway.execute_parallel_search(["Catan"])

        assert exc_info.value.kind is ErrorKind.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_empty_results_are_not_failures(self, make_gateway):
        gateway = make_gateway(FakeTransport())

        assert await gateway.execute_parallel_search(["Catan"]) == [[], []]

    @pytest.mark.asyncio
    async def test_no_patterns_dispatch_nothing(self, make_gateway):
        transport = FakeTransport()
        gateway = make_gateway(transport)

        assert await gateway.execute_parallel_search([]) == []
        assert transport.calls == []


class TestSearchGameByName:

    @pytest.mark.asyncio
    async def test_resolves_and_ranks_candidates(self, make_gateway):
        transport = FakeTransport(search={
            ("Ark Nova", True): (200, search_xml(ARK_NOVA)),
            ("Ark Nova", False): (200, search_xml((99, "Arkham Nova", 2020), ARK_NOVA)),
            "Nova": (200, search_xml((99, "Arkham Nova", 2020), (7, "Nova Luna", 2019))),
        })
        gateway = make_gateway(transport)

        candidates = await gateway.search_game_by_name("Ark Nova")

        assert candidates[0].external_id == 342942
        ids = [c.external_id for c in candidates]
        assert len(ids) == len(set(ids))
        assert ids.index(99) < ids.index(7)

    @pytest.mark.asyncio
    async def test_uses_translation_for_korean_title(self, make_gateway):
        transport = FakeTransport(search={"Sweet Land": (200, search_xml((5, "Sweet Land", 2020)))})
        gateway = make_gateway(transport)

        candidates = await gateway.search_game_by_name("스위트랜드")

        queried = {params["query"] for params in transport.search_calls}
        assert "Sweet Land" in queried
        assert [c.name for c in candidates] == ["Sweet Land"]

    @pytest.mark.asyncio
    async def test_blank_name_makes_no_calls(self, make_gateway):
        transport = FakeTransport()
        gateway = make_gateway(transport)

        assert await gateway.search_game_by_name("   ") == []
        assert transport.calls == []


class TestGetGameInfo:

    @pytest.mark.asyncio
    async def test_fetches_detail_with_stats(self, make_gateway):
        transport = FakeTransport(things={342942: [(200, thing_xml(342942, "Ark Nova"))]})
        gateway = make_gateway(transport)

        outcome = await gateway.get_game_info(342942)

        assert isinstance(outcome, Ok)
        assert outcome.value.name == "Ark Nova"
        assert transport.calls == [("thing", {"id": "342942", "type": "boardgame", "stats": "1"})]

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried_with_linear_backoff(self, make_gateway, sleeps):
        transport = FakeTransport(things={342942: [
            (429, ""),
            aiohttp.ClientConnectionError("reset"),
            (200, thing_xml(342942, "Ark Nova")),
        ]})
        gateway = make_gateway(transport)

        outcome = await gateway.get_game_info(342942)

        assert isinstance(outcome, Ok)
        assert len(transport.calls) == 3
        assert sleeps.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, make_gateway, sleeps):
        transport = FakeTransport(things={1: [(429, "")]})
        gateway = make_gateway(transport)

        outcome = await gateway.get_game_info(1)

        assert isinstance(outcome, Err)
        assert outcome.kind is ErrorKind.RATE_LIMIT
        assert len(transport.calls) == 3
        assert sleeps.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response,kind", [
        ((404, ""), ErrorKind.NOT_FOUND),
        ((200, "<items></items>"), ErrorKind.NOT_FOUND),
        ((200, "not xml at all"), ErrorKind.PARSING),
    ])
    async def test_terminal_failures_are_not_retried(self, make_gateway, sleeps, response, kind):
        transport = FakeTransport(things={1: [response]})
        gateway = make_gateway(transport)

        outcome = await gateway.get_game_info(1)

        assert outcome.kind is kind
        assert len(transport.calls) == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_sequential_fetches_are_spaced(self, sleeps):
        transport = FakeTransport(things={1: [(200, thing_xml(1, "Catan"))]})
        gateway = BGGSearchGateway(
            transport,
            settings=BGGSettings(),
            sleep=sleeps,
            spacer=RequestSpacer(1.0, clock=FakeClock(), sleep=sleeps),
        )

        await gateway.get_game_info(1)
        await gateway.get_game_info(1)

        assert sleeps.delays == [1.0]


@pytest.mark.asyncio
async def test_close_releases_transport(make_gateway):
    transport = FakeTransport()
    gateway = make_gateway(transport)

    await gateway.close()

    assert transport.closed is True
