"""Provider gateway with ordered fallback between generation providers."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from meal_assist.domain.errors import ProviderError
from meal_assist.domain.providers import (
    OLLAMA,
    OPENAI,
    ProviderConfig,
    ProviderModel,
    ProviderReply,
    ProviderTarget,
)

_PROVIDER_ORDER = (OPENAI, OLLAMA)
MAX_PROVIDER_CALLS = 2

_logger = logging.getLogger(__name__)


class GenerationClient(Protocol):
    """Interface for a text-completion provider."""

    async def generate(self, target: ProviderTarget, prompt: str) -> str:
        """Return the provider's free-form text for a prompt."""

    async def list_models(self, target: ProviderTarget) -> list[ProviderModel]:
        """Return models the provider offers."""


@dataclass
class ProviderGateway:
    """Chooses providers from user configuration and calls them."""

    clients: dict[str, GenerationClient]
    default_openai_model: str = "gpt-4o-mini"
    openai_base_url: str | None = None
    timeout_seconds: float = 60.0
    local_timeout_seconds: float = 120.0

    def resolve_targets(self, config: ProviderConfig) -> list[ProviderTarget]:
        """Return the primary provider followed by at most one fallback."""
        order: list[str] = []
        preferred = config.preferred_service
        if preferred in _PROVIDER_ORDER and config.is_usable(preferred):
            order.append(preferred)
        for provider in _PROVIDER_ORDER:
            if provider not in order and config.is_usable(provider):
                order.append(provider)
        return [
            self._target(provider, config)
            for provider in order[:MAX_PROVIDER_CALLS]
            if provider in self.clients
        ]

    async def generate(self, config: ProviderConfig, prompt: str) -> ProviderReply:
        """Send a prompt to the primary provider, falling back once on failure."""
        targets = self.resolve_targets(config)
        if not targets:
            raise ProviderError("No AI provider is configured or enabled")

        failures: list[str] = []
        for target in targets:
            client = self.clients[target.provider]
            try:
                text = await asyncio.wait_for(
                    client.generate(target, prompt), timeout=target.timeout_seconds
                )
            except TimeoutError:
                failures.append(f"{target.provider}: timed out")
                _logger.warning(
                    "Provider %s timed out after %ss",
                    target.provider,
                    target.timeout_seconds,
                )
                continue
            except Exception as exc:
                failures.append(f"{target.provider}: {exc}")
                _logger.warning("Provider %s failed: %s", target.provider, exc)
                continue
            if not text or not text.strip():
                failures.append(f"{target.provider}: empty response")
                _logger.warning("Provider %s returned no text", target.provider)
                continue
            return ProviderReply(
                provider=target.provider, model=target.model, text=text
            )

        raise ProviderError("AI provider request failed (" + "; ".join(failures) + ")")

    async def list_models(
        self, config: ProviderConfig
    ) -> dict[str, list[ProviderModel]]:
        """List models for every enabled provider, ignoring provider failures."""
        models: dict[str, list[ProviderModel]] = {OPENAI: [], OLLAMA: []}
        checks = {
            OPENAI: config.openai_enabled and bool(config.openai_api_key),
            OLLAMA: config.ollama_enabled and bool(config.ollama_endpoint),
        }
        for provider, enabled in checks.items():
            client = self.clients.get(provider)
            if not enabled or client is None:
                continue
            try:
                models[provider] = await client.list_models(
                    self._target(provider, config)
                )
            except Exception as exc:
                _logger.warning("Failed to list %s models: %s", provider, exc)
        return models

    def _target(self, provider: str, config: ProviderConfig) -> ProviderTarget:
        if provider == OLLAMA:
            return ProviderTarget(
                provider=OLLAMA,
                model=config.ollama_model,
                base_url=config.ollama_endpoint.rstrip("/"),
                api_key=None,
                timeout_seconds=self.local_timeout_seconds,
            )
        return ProviderTarget(
            provider=OPENAI,
            model=config.openai_model or self.default_openai_model,
            base_url=self.openai_base_url,
            api_key=config.openai_api_key,
            timeout_seconds=self.timeout_seconds,
        )
