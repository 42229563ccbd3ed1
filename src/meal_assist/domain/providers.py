"""Generation provider models."""

from dataclasses import dataclass

from pydantic import BaseModel

OPENAI = "openai"
OLLAMA = "ollama"
DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"


class ProviderConfig(BaseModel):
    """Per-user generation provider settings."""

    openai_enabled: bool = False
    openai_api_key: str = ""
    openai_model: str = ""
    ollama_enabled: bool = False
    ollama_endpoint: str = DEFAULT_OLLAMA_ENDPOINT
    ollama_model: str = ""
    preferred_service: str | None = None

    def is_usable(self, provider: str) -> bool:
        """Return True when a provider is enabled and has what it needs."""
        if provider == OPENAI:
            return self.openai_enabled and bool(self.openai_api_key)
        if provider == OLLAMA:
            return (
                self.ollama_enabled
                and bool(self.ollama_endpoint)
                and bool(self.ollama_model)
            )
        return False


@dataclass(frozen=True)
class ProviderTarget:
    """Everything a client needs to issue one generation call."""

    provider: str
    model: str
    base_url: str | None
    api_key: str | None
    timeout_seconds: float


@dataclass(frozen=True)
class ProviderReply:
    """Raw text returned by a provider."""

    provider: str
    model: str
    text: str


@dataclass(frozen=True)
class ProviderModel:
    """A model offered by a provider."""

    id: str
    name: str
    provider: str
