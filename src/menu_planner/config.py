"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from menu_planner.domain.ingredients import KeywordRule
from menu_planner.services.resolver import (
    DEFAULT_KEYWORD_RULES,
    keyword_rules_from_json,
)

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    openai_api_key: str
    openai_model: str = "gpt-5.2"
    openai_reasoning_effort: str = "low"
    openai_store: bool = False
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 384
    fuzzy_threshold: float = 0.15
    fuzzy_limit: int = 12
    semantic_threshold: float = 0.72
    semantic_limit: int = 15
    low_mapping_rate: float = 0.85
    keyword_rules_json: str | None = None
    day_batch_size: int = 6
    fixes_per_run: int = 3
    fixes_per_week: int = 2
    max_fixes_cap: int = 12
    save_batch_size: int = 15
    feedback_batch_size: int = 5
    improve_batch_size: int = 3
    generation_max_retries: int = 5
    retry_base_delay_seconds: float = 0.8
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_keyword_rules(raw: str | None) -> tuple[KeywordRule, ...]:
    """Return the gating table, using the built-in rules when unset."""
    if raw is None or not raw.strip():
        return DEFAULT_KEYWORD_RULES
    return keyword_rules_from_json(raw)
