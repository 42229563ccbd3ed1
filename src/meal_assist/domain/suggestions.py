"""Domain models for meal suggestions and suggestion jobs."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from meal_assist.domain.nutrition import COMPOSITE_PREFIX, MacroProfile


class SuggestionMode(StrEnum):
    """How many foods a job asks the provider for."""

    MEAL = "meal"
    SINGLE_ITEM = "single-item"


class RequestStatus(StrEnum):
    """Lifecycle states of a suggestion job."""

    QUEUED = "queued"
    CONTACTING_PROVIDER = "contacting_provider"
    WAITING_FOR_RESPONSE = "waiting_for_response"
    PARSING_RESPONSE = "parsing_response"
    READY = "ready"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {
            RequestStatus.READY,
            RequestStatus.ERROR,
            RequestStatus.CANCELLED,
        }


@dataclass(frozen=True)
class ExistingFoodSuggestion:
    """Suggestion referencing a catalog food."""

    food_id: int
    quantity: int
    reason: str = ""

    @property
    def ref(self) -> int:
        return self.food_id


@dataclass(frozen=True)
class CompositeFoodSuggestion:
    """Suggestion referencing a linked (composite) food."""

    composite_id: int
    quantity: int
    reason: str = ""

    @property
    def ref(self) -> str:
        return f"{COMPOSITE_PREFIX}{self.composite_id}"


@dataclass(frozen=True)
class NewFoodSuggestion:
    """Suggestion for a food that is not in the catalog yet."""

    name: str
    serving_size: str
    macros: MacroProfile
    quantity: int
    reason: str = ""

    @property
    def ref(self) -> None:
        return None


Suggestion = ExistingFoodSuggestion | CompositeFoodSuggestion | NewFoodSuggestion


@dataclass(frozen=True)
class EnrichedSuggestion:
    """An accepted suggestion with nutrition scaled by quantity."""

    suggestion: Suggestion
    name: str
    serving_size: str
    nutrition: MacroProfile

    def to_payload(self) -> dict[str, object]:
        """Return the client-facing representation."""
        return {
            "food_id": self.suggestion.ref,
            "is_new": isinstance(self.suggestion, NewFoodSuggestion),
            "name": self.name,
            "serving_size": self.serving_size,
            "quantity": self.suggestion.quantity,
            "reason": self.suggestion.reason,
            "calories": round(self.nutrition.calories),
            "protein": round(self.nutrition.protein_g, 1),
            "carbs": round(self.nutrition.carbs_g, 1),
            "fat": round(self.nutrition.fat_g, 1),
            "fiber": round(self.nutrition.fiber_g, 1),
        }


@dataclass(frozen=True)
class SuggestionTotals:
    """Aggregate nutrition for a suggestion set."""

    calories: float
    protein_g: float
    carbs_g: float
    fat_g: float
    fiber_g: float

    def to_payload(self) -> dict[str, object]:
        return {
            "calories": round(self.calories),
            "protein": round(self.protein_g, 1),
            "carbs": round(self.carbs_g, 1),
            "fat": round(self.fat_g, 1),
            "fiber": round(self.fiber_g, 1),
        }


@dataclass(frozen=True)
class SuggestionResult:
    """Suggestions accepted for a job plus their totals."""

    suggestions: list[EnrichedSuggestion]
    totals: SuggestionTotals
    used_fallback: bool = False

    def suggestion_payloads(self) -> list[dict[str, object]]:
        return [item.to_payload() for item in self.suggestions]


@dataclass(frozen=True)
class SuggestionJob:
    """Parameters of a submitted suggestion job."""

    meal_id: int
    target_calories: float
    mode: SuggestionMode = SuggestionMode.MEAL
    preferences: str | None = None
    day: str | None = None
    allow_new_foods: bool = False
    exclude_food_ids: list[str | int] = field(default_factory=list)


@dataclass(frozen=True)
class SuggestionRequest:
    """Tracked state of a suggestion job."""

    request_id: str
    user_id: UUID
    meal_id: int
    status: RequestStatus
    created_at: datetime
    result: SuggestionResult | None = None
    error: str | None = None
    debug_prompt: str | None = None
    raw_response: str | None = None
    provider: str | None = None
