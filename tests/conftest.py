"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from uuid import UUID, uuid4

import pytest

from meal_assist.config import Settings
from meal_assist.containers import AppContainer
from meal_assist.domain.nutrition import (
    FoodItem,
    LedgerEntry,
    MacroProfile,
    MealDefinition,
    NutritionGoal,
)
from meal_assist.domain.providers import (
    OLLAMA,
    OPENAI,
    ProviderConfig,
    ProviderModel,
    ProviderTarget,
)
from meal_assist.services.ai_config import AiConfigRepository, AiConfigService
from meal_assist.services.context import NutritionContextBuilder, NutritionRepository
from meal_assist.services.providers import GenerationClient, ProviderGateway
from meal_assist.services.suggestions import SuggestionService
from meal_assist.services.tracker import InMemoryRequestStore, RequestTracker

TODAY = date(2024, 5, 14)
DEFAULT_GOAL = NutritionGoal(
    calories=2000, protein_g=150, carbs_g=200, fat_g=65, fiber_g=30
)


def food(  # noqa: PLR0913
    food_id: int,
    name: str,
    calories: float,
    protein: float = 0.0,
    carbs: float = 0.0,
    fat: float = 0.0,
    fiber: float = 0.0,
    origin: str = "catalog",
) -> FoodItem:
    return FoodItem(
        id=food_id,
        name=name,
        serving_size="1 serving",
        macros=MacroProfile(
            calories=calories,
            protein_g=protein,
            carbs_g=carbs,
            fat_g=fat,
            fiber_g=fiber,
        ),
        origin=origin,
    )


def default_catalog() -> list[FoodItem]:
    return [
        food(1, "Chicken Breast", 165, protein=31, fat=3.6),
        food(2, "Brown Rice", 216, protein=5, carbs=45, fat=1.8, fiber=3.5),
        food(3, "Broccoli", 31, protein=2.6, carbs=6, fat=0.3, fiber=2.4),
        food(4, "Eggs", 143, protein=12, carbs=0.7, fat=9.5),
        food(5, "Greek Yogurt", 100, protein=17, carbs=6, fat=0.7),
        food(6, "Salmon", 208, protein=20, fat=13),
        food(7, "Apple", 95, protein=0.5, carbs=25, fat=0.3, fiber=4.4),
        food(8, "Oatmeal", 150, protein=5, carbs=27, fat=3, fiber=4),
    ]


@dataclass
class InMemoryNutritionRepository(NutritionRepository):
    goal: NutritionGoal | None = DEFAULT_GOAL
    meals: dict[int, MealDefinition] = field(default_factory=dict)
    foods: list[FoodItem] = field(default_factory=default_catalog)
    composites: list[FoodItem] = field(default_factory=list)
    entries: dict[date, list[LedgerEntry]] = field(default_factory=dict)

    def add_meal(
        self, user_id: UUID, meal_id: int = 1, classification: str = "ordinary"
    ) -> MealDefinition:
        meal = MealDefinition(
            id=meal_id,
            user_id=user_id,
            name="Snack" if classification == "snack" else "Lunch",
            classification=classification,
        )
        self.meals[meal_id] = meal
        return meal

    def log(
        self, day: date, meal_id: int, item: FoodItem, quantity: float = 1.0
    ) -> None:
        self.entries.setdefault(day, []).append(
            LedgerEntry(
                meal_id=meal_id,
                food_id=item.id,
                macros=item.macros,
                quantity=quantity,
                origin=item.origin,
            )
        )

    def get_active_goal(self, user_id: UUID) -> NutritionGoal | None:
        return self.goal

    def get_meal(self, user_id: UUID, meal_id: int) -> MealDefinition | None:
        meal = self.meals.get(meal_id)
        if meal is None or meal.user_id != user_id:
            return None
        return meal

    def list_foods(self, user_id: UUID) -> list[FoodItem]:
        return list(self.foods)

    def list_composite_foods(self, user_id: UUID) -> list[FoodItem]:
        return list(self.composites)

    def list_ledger_entries(self, user_id: UUID, day: date) -> list[LedgerEntry]:
        return list(self.entries.get(day, []))


@dataclass
class InMemoryAiConfigRepository(AiConfigRepository):
    configs: dict[UUID, ProviderConfig] = field(default_factory=dict)

    def get_config(self, user_id: UUID) -> ProviderConfig | None:
        return self.configs.get(user_id)

    def save_config(self, user_id: UUID, config: ProviderConfig) -> None:
        self.configs[user_id] = config


@dataclass
class FakeGenerationClient(GenerationClient):
    responses: list[str | Exception] = field(default_factory=list)
    models: list[ProviderModel] = field(default_factory=list)
    delay_seconds: float = 0.0
    prompts: list[str] = field(default_factory=list)
    targets: list[ProviderTarget] = field(default_factory=list)

    async def generate(self, target: ProviderTarget, prompt: str) -> str:
        self.prompts.append(prompt)
        self.targets.append(target)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, Exception):
            raise response
        return response

    async def list_models(self, target: ProviderTarget) -> list[ProviderModel]:
        return list(self.models)


@dataclass
class ManualClock:
    now: datetime = field(default_factory=lambda: datetime(2024, 5, 14, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now


OPENAI_ONLY = ProviderConfig(openai_enabled=True, openai_api_key="sk-test")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
    )


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def nutrition_repository(user_id: UUID) -> InMemoryNutritionRepository:
    repository = InMemoryNutritionRepository()
    repository.add_meal(user_id, meal_id=1)
    return repository


@pytest.fixture
def openai_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def ollama_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def ai_config_repository(user_id: UUID) -> InMemoryAiConfigRepository:
    return InMemoryAiConfigRepository(configs={user_id: OPENAI_ONLY})


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def suggestion_service(
    nutrition_repository: InMemoryNutritionRepository,
    ai_config_repository: InMemoryAiConfigRepository,
    openai_client: FakeGenerationClient,
    ollama_client: FakeGenerationClient,
    clock: ManualClock,
) -> SuggestionService:
    return SuggestionService(
        context_builder=NutritionContextBuilder(
            nutrition_repository, today=lambda: TODAY
        ),
        gateway=ProviderGateway(
            clients={OPENAI: openai_client, OLLAMA: ollama_client}
        ),
        ai_config_service=AiConfigService(ai_config_repository),
        tracker=RequestTracker(store=InMemoryRequestStore(), clock=clock),
    )


@pytest.fixture
def container(
    settings: Settings, suggestion_service: SuggestionService
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        ai_config_service=suggestion_service.ai_config_service,
        provider_gateway=suggestion_service.gateway,
        request_tracker=suggestion_service.tracker,
        suggestion_service=suggestion_service,
        close_resources=close_resources,
    )
