from __future__ import annotations

import threading
import time

import pytest
from fastapi.testclient import TestClient

from fakes import (
    FakeTransport, FakeWebTransport, OutageTransport, ScriptedComposer, google_json, search_xml, thing_xml,
)
from rulemaster_api.bootstrap import build_research_services
from rulemaster_api.config import BGGSettings, SearchSettings, Settings, get_settings
from rulemaster_api.main import app
from rulemaster_api.research.errors import AnswerComposerError, ConfigurationError
from rulemaster_api.research.router import get_research_services

FORCED = "[FORCE_RESEARCH] explain scoring"


def _transport() -> FakeTransport:
    return FakeTransport(
        search={
            "Ark Nova": (200, search_xml((342942, "Ark Nova", 2021), (99, "Ark Nova: Marine Worlds", 2022))),
        },
        things={
            342942: [(200, thing_xml(342942, "Ark Nova"))],
            404: [(404, "")],
            429: [(429, "")],
            500: [(500, "boom")],
        },
    )


def _settings(search: SearchSettings | None = None) -> Settings:
    return Settings(
        environment="test",
        bgg=BGGSettings(max_jitter_seconds=0, min_request_interval_seconds=0, retry_base_delay_seconds=0),
        search=search or SearchSettings(enabled=False),
    )


@pytest.fixture()
def composer() -> ScriptedComposer:
    return ScriptedComposer(answer="Score appeal and conservation points.")


@pytest.fixture()
def services(composer: ScriptedComposer):
    return build_research_services(_settings(), composer=composer, transport=_transport())


@pytest.fixture()
def api_client(services):
    app.dependency_overrides[get_research_services] = lambda: services
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def test_ask_simple_question_skips_research(api_client: TestClient):
    resp = api_client.post("/research/ask", json={"game_title": "Wingspan", "question": "What is the setup time?"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["research_used"] is False
    assert data["sources"] is None
    assert data["complexity"]["score"] < 8
    assert data["stages"] == ["analyzing", "processing", "completed"]


def test_ask_forced_question_returns_sources_then_cache(api_client: TestClient):
    first = api_client.post("/research/ask", json={"game_title": "Ark Nova", "question": FORCED}).json()
    second = api_client.post("/research/ask", json={"game_title": "Ark Nova", "question": FORCED}).json()

    assert first["research_used"] is True
    assert first["from_cache"] is False
    assert first["sources"][0] == "https://boardgamegeek.com/boardgame/342942"
    assert first["complexity"]["forced"] is True
    assert first["answer"] == "Score appeal and conservation points."
    assert second["from_cache"] is True


def test_ask_v2_returns_analysis(api_client: TestClient):
    resp = api_client.post(
        "/research/ask",
        json={"game_title": "Wingspan", "question": "How many players can join?", "use_v2_analysis": True},
    )

    data = resp.json()
    assert data["complexity"] is None
    assert data["analysis_v2"]["type"] == "rule"
    assert data["analysis_v2"]["requires_research"] is False


def test_ask_rejects_blank_game_title(api_client: TestClient):
    resp = api_client.post("/research/ask", json={"game_title": "", "question": "x"})

    assert resp.status_code == 422


def test_answer_backend_failure_is_502(composer: ScriptedComposer, api_client: TestClient):
    composer.fail_with = AnswerComposerError("Too many requests", status_code=429, status_text="ThrottlingException")

    resp = api_client.post("/research/ask", json={"game_title": "Wingspan", "question": "What is the setup time?"})

    assert resp.status_code == 502
    assert "ThrottlingException" in resp.json()["detail"]


def test_usage_reflects_questions(api_client: TestClient):
    api_client.post("/research/ask", json={"game_title": "Ark Nova", "question": FORCED})

    data = api_client.get("/research/usage").json()

    assert data["total_questions"] == 1
    assert data["daily_research_usage"] == 1
    assert data["remaining"] == {"daily": 79, "window": 4}
    assert "research runs today: 1/80" in data["report"]


def test_cache_stats_and_clearing(api_client: TestClient):
    api_client.post("/research/ask", json={"game_title": "Ark Nova", "question": FORCED})
    api_client.post("/research/ask", json={"game_title": "Ark Nova", "question": FORCED})

    stats = api_client.get("/research/cache").json()
    assert stats["size"] == 1
    assert stats["hits"] == 1
    assert stats["popular"][0]["game_title"] == "Ark Nova"
    assert stats["popular"][0]["question"] == "explain scoring"

    assert api_client.delete("/research/cache/Ark Nova").json() == {"cleared": 1}
    assert api_client.delete("/research/cache").json() == {"cleared": 0}


def test_cache_entries_for_a_game(api_client: TestClient):
    api_client.post("/research/ask", json={"game_title": "Ark Nova", "question": FORCED})

    data = api_client.get("/research/cache/Ark Nova").json()

    assert data["game_title"] == "Ark Nova"
    assert [entry["question"] for entry in data["entries"]] == ["explain scoring"]
    assert api_client.get("/research/cache/Wingspan").json()["entries"] == []


def test_cache_cleanup_purges_expired_entries(api_client: TestClient, services, monkeypatch: pytest.MonkeyPatch):
    api_client.post("/research/ask", json={"game_title": "Ark Nova", "question": FORCED})
    assert api_client.post("/research/cache/cleanup").json() == {"removed": 0, "size": 1}

    monkeypatch.setattr(services.cache, "_clock", lambda: time.time() + services.cache.default_ttl + 1)

    assert api_client.post("/research/cache/cleanup").json() == {"removed": 1, "size": 0}


def test_handlers_run_on_the_event_loop_thread(api_client: TestClient, services, monkeypatch: pytest.MonkeyPatch):
    threads = {}
    limiter = services.limiter

    def recording(name, method):
        def wrapper(*args, **kwargs):
            threads[name] = threading.current_thread().name
            return method(*args, **kwargs)
        return wrapper

    monkeypatch.setattr(limiter, "check_and_record", recording("check", limiter.check_and_record))
    monkeypatch.setattr(limiter, "get_usage_status", recording("usage", limiter.get_usage_status))

    api_client.post("/research/ask", json={"game_title": "Ark Nova", "question": FORCED})
    api_client.get("/research/usage")

    assert threads["check"] == threads["usage"]


def test_ask_merges_web_findings(composer: ScriptedComposer):
    thread_url = "https://boardgamegeek.com/thread/777/conservation-scoring"
    web = FakeWebTransport(search={"*": (200, google_json(
        ("Conservation scoring explained", thread_url, "Appeal and conservation meet on the scoring track."),
    ))})
    settings = _settings(SearchSettings(api_key="key", engine_id="engine"))
    services = build_research_services(settings, composer=composer, transport=_transport(), web_transport=web)
    app.dependency_overrides[get_research_services] = lambda: services
    try:
        data = TestClient(app).post("/research/ask", json={"game_title": "Ark Nova", "question": FORCED}).json()
    finally:
        app.dependency_overrides.clear()

    assert data["research_used"] is True
    assert data["sources"][:2] == ["https://boardgamegeek.com/boardgame/342942", thread_url]
    assert "Web search findings:" in composer.prompts[-1][1]


def test_web_search_without_credentials_fails_construction(composer: ScriptedComposer):
    with pytest.raises(ConfigurationError):
        build_research_services(_settings(SearchSettings(enabled=True)), composer=composer, transport=_transport())


def test_game_search(api_client: TestClient):
    resp = api_client.get("/games/search", params={"name": "Ark Nova"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["patterns"][0] == "Ark Nova"
    assert [r["external_id"] for r in data["results"]] == [342942, 99]


def test_game_search_outage_is_502(composer: ScriptedComposer):
    services = build_research_services(_settings(), composer=composer, transport=OutageTransport())
    app.dependency_overrides[get_research_services] = lambda: services
    try:
        resp = TestClient(app).get("/games/search", params={"name": "Ark Nova"})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 502
    assert "search calls failed" in resp.json()["detail"]


def test_game_search_requires_name(api_client: TestClient):
    assert api_client.get("/games/search", params={"name": ""}).status_code == 422


def test_game_detail(api_client: TestClient):
    resp = api_client.get("/games/342942")

    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Ark Nova"
    assert data["url"] == "https://boardgamegeek.com/boardgame/342942"
    assert data["mechanics"] == ["Hand Management", "Open Drafting"]


@pytest.mark.parametrize("game_id,expected", [(404, 404), (429, 429), (500, 502)])
def test_game_detail_errors(api_client: TestClient, game_id: int, expected: int):
    assert api_client.get(f"/games/{game_id}").status_code == expected


def test_missing_bedrock_configuration_is_503(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RULEMASTER_AWS_USE_BEDROCK", "false")
    monkeypatch.setattr(app.state, "research_services", None, raising=False)
    get_settings.cache_clear()
    try:
        resp = TestClient(app).get("/research/usage")
    finally:
        get_settings.cache_clear()

    assert resp.status_code == 503
    assert resp.json()["kind"] == "configuration"
