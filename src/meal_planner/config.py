"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

TEST_MODES = frozenset(
    {"production", "fixture", "mini-minimal", "mini-full", "full-minimal"}
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    service_token: str
    openai_api_key: str
    openai_model: str = "gpt-5.2"
    openai_test_model: str = "gpt-5-mini"
    openai_reasoning_effort: str | None = "medium"
    openai_store: bool = False
    meal_plan_test_mode: str | None = None
    generation_max_retries: int = 2
    generation_backoff_seconds: float = 1.0
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_test_mode(raw: str | None) -> str:
    """Parse the meal plan test mode flag from env."""
    if raw is None:
        return "production"
    cleaned = raw.strip().lower()
    if cleaned in {"", "off", "none"}:
        return "production"
    if cleaned not in TEST_MODES:
        raise ValueError(
            f"Unknown MEAL_PLAN_TEST_MODE {raw!r}; "
            f"expected one of {', '.join(sorted(TEST_MODES))}"
        )
    return cleaned
