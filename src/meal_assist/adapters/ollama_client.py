"""Ollama HTTP client for local suggestion generation."""

from dataclasses import dataclass

import httpx

from meal_assist.domain.providers import OLLAMA, ProviderModel, ProviderTarget
from meal_assist.services.providers import GenerationClient


@dataclass
class HttpxOllamaClient(GenerationClient):
    """HTTPX-backed Ollama client."""

    http_client: httpx.AsyncClient

    @classmethod
    def create(cls) -> "HttpxOllamaClient":
        """Create an Ollama client with a managed httpx session."""
        return cls(http_client=httpx.AsyncClient())

    async def generate(self, target: ProviderTarget, prompt: str) -> str:
        """Run a non-streaming completion and return its text."""
        response = await self.http_client.post(
            f"{target.base_url}/api/generate",
            json={"model": target.model, "prompt": prompt, "stream": False},
            timeout=target.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        return str(payload.get("response") or "")

    async def list_models(self, target: ProviderTarget) -> list[ProviderModel]:
        """Return locally installed models."""
        response = await self.http_client.get(
            f"{target.base_url}/api/tags", timeout=10
        )
        response.raise_for_status()
        models: list[ProviderModel] = []
        for model in response.json().get("models") or []:
            name = model.get("name")
            if not name:
                continue
            size = _format_size(model.get("size"))
            models.append(
                ProviderModel(id=name, name=f"{name} ({size})", provider=OLLAMA)
            )
        return models

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _format_size(size: object) -> str:
    if isinstance(size, bool) or not isinstance(size, int | float) or size <= 0:
        return "Unknown size"
    gigabytes = size / 1024**3
    if gigabytes >= 1:
        return f"{gigabytes:.1f} GB"
    return f"{size / 1024**2:.0f} MB"
