"""Shared fixtures. Nothing here touches the network or the wall clock."""

from typing import Optional

import pytest

from fakes import FakeClock, FakeTransport, FakeWebTransport, ScriptedComposer, SleepRecorder
from rulemaster_api.config import BGGSettings, SearchSettings
from rulemaster_api.research.bgg_gateway import BGGSearchGateway
from rulemaster_api.research.web_search import GoogleWebSearcher


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def bgg_settings() -> BGGSettings:
    return BGGSettings(
        request_timeout_seconds=1.0,
        max_jitter_seconds=0.5,
        min_request_interval_seconds=0.0,
        max_retries=3,
        retry_base_delay_seconds=2.0,
    )


@pytest.fixture
def make_gateway(bgg_settings, sleeps):
    def factory(transport: FakeTransport, settings: Optional[BGGSettings] = None) -> BGGSearchGateway:
        return BGGSearchGateway(
            transport,
            settings=settings or bgg_settings,
            sleep=sleeps,
            jitter=lambda: 0.5,
        )
    return factory


@pytest.fixture
def composer() -> ScriptedComposer:
    return ScriptedComposer()


@pytest.fixture
def search_settings() -> SearchSettings:
    return SearchSettings(api_key="test-key", engine_id="test-engine", request_timeout_seconds=1.0)


@pytest.fixture
def make_web_searcher(search_settings):
    def factory(transport: FakeWebTransport, settings: Optional[SearchSettings] = None) -> GoogleWebSearcher:
        return GoogleWebSearcher(settings or search_settings, transport)
    return factory
