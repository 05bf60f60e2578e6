from __future__ import annotations

import pytest
from pydantic import ValidationError

from rulemaster_api.config import BGGSettings, ResearchSettings, get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = get_settings()

    assert settings.research.complexity_threshold == 8
    assert settings.research.max_research_per_window == 5
    assert settings.research.window_seconds == 3600
    assert settings.research.daily_research_limit == 80
    assert settings.research.cache_ttl_seconds == 4 * 3600
    assert settings.research.force_research_directive == "[FORCE_RESEARCH]"
    assert settings.bgg.max_retries == 3
    assert settings.bgg.retry_base_delay_seconds == 2.0
    assert settings.bgg.similarity_threshold == 0.7


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RULEMASTER_ENVIRONMENT", "production")
    monkeypatch.setenv("RULEMASTER_RESEARCH_COMPLEXITY_THRESHOLD", "12")
    monkeypatch.setenv("RULEMASTER_BGG_INCLUDE_FLEXIBLE_SEARCH", "false")
    monkeypatch.setenv("RULEMASTER_AWS_ANSWER_MODEL_ID", "anthropic.claude-3-haiku-20240307-v1:0")

    settings = get_settings()

    assert settings.environment == "production"
    assert settings.research.complexity_threshold == 12
    assert settings.bgg.include_flexible_search is False
    assert settings.aws.answer_model_id == "anthropic.claude-3-haiku-20240307-v1:0"


def test_settings_are_cached():
    assert get_settings() is get_settings()


@pytest.mark.parametrize("field,value", [
    ("max_research_per_window", 0),
    ("window_seconds", 0),
    ("complexity_threshold", 101),
])
def test_research_settings_validation(field: str, value: float):
    with pytest.raises(ValidationError):
        ResearchSettings(**{field: value})


def test_similarity_threshold_bounds():
    with pytest.raises(ValidationError):
        BGGSettings(similarity_threshold=1.5)
