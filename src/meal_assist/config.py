"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from meal_assist.domain.providers import DEFAULT_OLLAMA_ENDPOINT

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str | None = None
    ollama_endpoint: str = DEFAULT_OLLAMA_ENDPOINT
    provider_timeout_seconds: float = 60.0
    local_provider_timeout_seconds: float = 120.0
    request_retention_minutes: int = 30
    sweep_interval_seconds: float = 60.0
    max_candidates: int = 25
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
