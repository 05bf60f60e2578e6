from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AWSSettings(BaseSettings):
    """Configuration for the Bedrock answer composer."""

    region_name: str | None = None
    profile_name: str | None = None
    use_bedrock: bool = True
    answer_model_id: str = "anthropic.claude-3-5-sonnet-20240620-v1:0"
    max_tokens: int = Field(default=1500, gt=0)
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(env_prefix="RULEMASTER_AWS_", env_file=None)


class ResearchSettings(BaseSettings):
    """Controls for research triggering, throttling and caching."""

    complexity_threshold: int = Field(default=8, ge=0, le=100)
    max_research_per_window: int = Field(default=5, gt=0)
    window_seconds: float = Field(default=3600.0, gt=0)
    daily_research_limit: int = Field(default=80, gt=0)
    cache_ttl_seconds: float = Field(default=4 * 3600.0, gt=0)
    max_source_count: int = Field(default=3, gt=0)
    force_research_directive: str = "[FORCE_RESEARCH]"

    model_config = SettingsConfigDict(env_prefix="RULEMASTER_RESEARCH_", env_file=None)


class BGGSettings(BaseSettings):
    """Configuration for the BoardGameGeek XML API gateway."""

    base_url: str = "https://boardgamegeek.com/xmlapi2"
    request_timeout_seconds: float = Field(default=8.0, gt=0)
    max_jitter_seconds: float = Field(default=0.5, ge=0)
    min_request_interval_seconds: float = Field(default=1.0, ge=0)
    max_retries: int = Field(default=3, gt=0)
    retry_base_delay_seconds: float = Field(default=2.0, ge=0)
    max_results: int = Field(default=10, gt=0)
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    include_flexible_search: bool = True
    user_agent: str = "RuleMaster/0.3 (+https://boardgamegeek.com)"

    model_config = SettingsConfigDict(env_prefix="RULEMASTER_BGG_", env_file=None)


class SearchSettings(BaseSettings):
    """Configuration for web search through the Google Custom Search API."""

    enabled: bool = True
    api_key: str | None = None
    engine_id: str | None = None
    base_url: str = "https://www.googleapis.com/customsearch/v1"
    request_timeout_seconds: float = Field(default=8.0, gt=0)
    enrich_timeout_seconds: float = Field(default=3.0, gt=0)
    max_queries: int = Field(default=3, gt=0)
    results_per_query: int = Field(default=5, gt=0, le=10)
    max_results: int = Field(default=8, gt=0)
    enrich_top: int = Field(default=5, ge=0)
    max_content_chars: int = Field(default=1500, gt=0)
    user_agent: str = "Mozilla/5.0 (compatible; RuleMaster/0.3)"

    model_config = SettingsConfigDict(env_prefix="RULEMASTER_SEARCH_", env_file=None)


class Settings(BaseSettings):
    """Application configuration."""

    environment: Literal["development", "test", "production"] = "development"
    aws: AWSSettings = Field(default_factory=AWSSettings)
    research: ResearchSettings = Field(default_factory=ResearchSettings)
    bgg: BGGSettings = Field(default_factory=BGGSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)

    model_config = SettingsConfigDict(env_prefix="RULEMASTER_", env_file=None)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
