"""Per-user generation provider settings."""

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from meal_assist.domain.providers import DEFAULT_OLLAMA_ENDPOINT, ProviderConfig


class AiConfigRepository(Protocol):
    """Persistence interface for provider settings."""

    def get_config(self, user_id: UUID) -> ProviderConfig | None:
        """Return the stored configuration if set."""

    def save_config(self, user_id: UUID, config: ProviderConfig) -> None:
        """Insert or replace the user's configuration."""


@dataclass
class AiConfigService:
    """Service for provider settings."""

    repository: AiConfigRepository
    default_ollama_endpoint: str = DEFAULT_OLLAMA_ENDPOINT

    def get_config(self, user_id: UUID) -> ProviderConfig:
        """Return the user's configuration or defaults if unset."""
        stored = self.repository.get_config(user_id)
        if stored is not None:
            return stored
        return ProviderConfig(ollama_endpoint=self.default_ollama_endpoint)

    def save_config(self, user_id: UUID, config: ProviderConfig) -> ProviderConfig:
        """Persist a user's configuration and return it."""
        self.repository.save_config(user_id, config)
        return config
