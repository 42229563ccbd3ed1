"""OpenAI chat completions client for suggestion generation."""

from collections.abc import Callable
from dataclasses import dataclass, field

from openai import AsyncOpenAI

from meal_assist.domain.providers import OPENAI, ProviderModel, ProviderTarget
from meal_assist.services.providers import GenerationClient

SYSTEM_PROMPT = (
    "You are a nutrition assistant. Reply with JSON only, following the "
    "requested shape exactly."
)


@dataclass
class OpenAIGenerationClient(GenerationClient):
    """Generation client backed by the OpenAI chat completions API.

    API keys are per user, so an SDK client is created for each call.
    """

    client_factory: Callable[..., AsyncOpenAI] = field(default=AsyncOpenAI)

    async def generate(self, target: ProviderTarget, prompt: str) -> str:
        """Return the first choice's message content."""
        client = self._client(target)
        try:
            response = await client.chat.completions.create(
                model=target.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
        finally:
            await client.close()
        if not response.choices:
            raise RuntimeError("OpenAI returned no choices")
        return response.choices[0].message.content or ""

    async def list_models(self, target: ProviderTarget) -> list[ProviderModel]:
        """Return chat-capable GPT models sorted by id."""
        client = self._client(target)
        try:
            page = await client.models.list()
        finally:
            await client.close()
        return sorted(
            (
                ProviderModel(id=model.id, name=model.id, provider=OPENAI)
                for model in page.data
                if "gpt" in model.id
            ),
            key=lambda model: model.id,
        )

    def _client(self, target: ProviderTarget) -> AsyncOpenAI:
        return self.client_factory(
            api_key=target.api_key,
            base_url=target.base_url,
            timeout=target.timeout_seconds,
            max_retries=0,
        )
