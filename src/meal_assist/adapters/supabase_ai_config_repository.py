"""Supabase repository for provider settings."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from meal_assist.domain.providers import DEFAULT_OLLAMA_ENDPOINT, ProviderConfig
from meal_assist.services.ai_config import AiConfigRepository


@dataclass
class SupabaseAiConfigRepository(AiConfigRepository):
    """Supabase implementation for provider settings."""

    client: Client

    def get_config(self, user_id: UUID) -> ProviderConfig | None:
        """Return the stored configuration for a user."""
        response = (
            self.client.table("ai_config")
            .select("*")
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_config(response.data[0])

    def save_config(self, user_id: UUID, config: ProviderConfig) -> None:
        """Update the user's row, inserting one when none exists."""
        payload = {
            **config.model_dump(),
            "updated_at": datetime.now(tz=UTC).isoformat(),
        }
        existing = (
            self.client.table("ai_config")
            .select("id")
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        if existing.data:
            self.client.table("ai_config").update(payload).eq(
                "user_id", str(user_id)
            ).execute()
            return
        self.client.table("ai_config").insert(
            {"user_id": str(user_id), **payload}
        ).execute()


def _parse_config(row: dict[str, object]) -> ProviderConfig:
    return ProviderConfig(
        openai_enabled=bool(row.get("openai_enabled", False)),
        openai_api_key=str(row.get("openai_api_key") or ""),
        openai_model=str(row.get("openai_model") or ""),
        ollama_enabled=bool(row.get("ollama_enabled", False)),
        ollama_endpoint=str(row.get("ollama_endpoint") or DEFAULT_OLLAMA_ENDPOINT),
        ollama_model=str(row.get("ollama_model") or ""),
        preferred_service=row.get("preferred_service") or None,
    )
