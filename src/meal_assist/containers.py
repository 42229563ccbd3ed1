"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import create_client

from meal_assist.adapters.ollama_client import HttpxOllamaClient
from meal_assist.adapters.openai_generation_client import OpenAIGenerationClient
from meal_assist.adapters.supabase_ai_config_repository import (
    SupabaseAiConfigRepository,
)
from meal_assist.adapters.supabase_nutrition_repository import (
    SupabaseNutritionRepository,
)
from meal_assist.config import Settings
from meal_assist.domain.providers import OLLAMA, OPENAI
from meal_assist.services.ai_config import AiConfigService
from meal_assist.services.context import NutritionContextBuilder
from meal_assist.services.providers import ProviderGateway
from meal_assist.services.suggestions import SuggestionService
from meal_assist.services.tracker import InMemoryRequestStore, RequestTracker


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    ai_config_service: AiConfigService
    provider_gateway: ProviderGateway
    request_tracker: RequestTracker
    suggestion_service: SuggestionService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    nutrition_repository = SupabaseNutritionRepository(supabase_client)
    ai_config_service = AiConfigService(
        SupabaseAiConfigRepository(supabase_client),
        default_ollama_endpoint=resolved_settings.ollama_endpoint,
    )
    ollama_client = HttpxOllamaClient.create()
    provider_gateway = ProviderGateway(
        clients={OPENAI: OpenAIGenerationClient(), OLLAMA: ollama_client},
        default_openai_model=resolved_settings.openai_model,
        openai_base_url=resolved_settings.openai_base_url,
        timeout_seconds=resolved_settings.provider_timeout_seconds,
        local_timeout_seconds=resolved_settings.local_provider_timeout_seconds,
    )
    request_tracker = RequestTracker(
        store=InMemoryRequestStore(),
        retention=timedelta(minutes=resolved_settings.request_retention_minutes),
    )
    suggestion_service = SuggestionService(
        context_builder=NutritionContextBuilder(nutrition_repository),
        gateway=provider_gateway,
        ai_config_service=ai_config_service,
        tracker=request_tracker,
        max_candidates=resolved_settings.max_candidates,
    )

    async def close_resources() -> None:
        await suggestion_service.close()
        await ollama_client.close()

    return AppContainer(
        settings=resolved_settings,
        ai_config_service=ai_config_service,
        provider_gateway=provider_gateway,
        request_tracker=request_tracker,
        suggestion_service=suggestion_service,
        close_resources=close_resources,
    )
