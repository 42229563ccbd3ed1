"""Nutrition domain models."""

from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

COMPOSITE_PREFIX = "linked_"


def parse_food_ref(value: object) -> int | str | None:
    """Normalize a food reference to an int id or a ``linked_<id>`` string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float) and value.is_integer():
        return parse_food_ref(int(value))
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if cleaned.startswith(COMPOSITE_PREFIX):
        suffix = cleaned[len(COMPOSITE_PREFIX) :]
        return f"{COMPOSITE_PREFIX}{int(suffix)}" if suffix.isdigit() else None
    if cleaned.isdigit():
        return parse_food_ref(int(cleaned))
    return None


@dataclass(frozen=True)
class MacroProfile:
    """Calories and macronutrients for a serving or a period."""

    calories: float = 0.0
    protein_g: float = 0.0
    carbs_g: float = 0.0
    fat_g: float = 0.0
    fiber_g: float = 0.0

    def plus(self, other: "MacroProfile") -> "MacroProfile":
        return MacroProfile(
            calories=self.calories + other.calories,
            protein_g=self.protein_g + other.protein_g,
            carbs_g=self.carbs_g + other.carbs_g,
            fat_g=self.fat_g + other.fat_g,
            fiber_g=self.fiber_g + other.fiber_g,
        )

    def scaled(self, factor: float) -> "MacroProfile":
        return MacroProfile(
            calories=self.calories * factor,
            protein_g=self.protein_g * factor,
            carbs_g=self.carbs_g * factor,
            fat_g=self.fat_g * factor,
            fiber_g=self.fiber_g * factor,
        )

    def net_carbs_g(self) -> float:
        """Carbohydrates minus fiber, never negative."""
        return max(0.0, self.carbs_g - self.fiber_g)


@dataclass(frozen=True)
class NutritionGoal:
    """Active daily targets for a user."""

    calories: float
    protein_g: float
    carbs_g: float
    fat_g: float
    fiber_g: float
    track_net_carbs: bool = False

    def as_profile(self) -> MacroProfile:
        return MacroProfile(
            calories=self.calories,
            protein_g=self.protein_g,
            carbs_g=self.carbs_g,
            fat_g=self.fat_g,
            fiber_g=self.fiber_g,
        )


@dataclass(frozen=True)
class MealDefinition:
    """A user's meal slot (breakfast, lunch, snack...)."""

    id: int
    user_id: UUID
    name: str
    classification: str = "ordinary"

    @property
    def is_snack(self) -> bool:
        return self.classification == "snack"


@dataclass(frozen=True)
class FoodItem:
    """A food with per-serving macros.

    ``origin`` is ``catalog`` for plain foods, ``composite`` for linked foods
    whose component servings were summed by the repository, and ``new`` for
    foods invented by a provider.
    """

    id: int | None
    name: str
    serving_size: str
    macros: MacroProfile
    origin: str = "catalog"

    @property
    def ref(self) -> str | int | None:
        """Identifier as exposed to providers and clients."""
        if self.origin == "composite" and self.id is not None:
            return f"{COMPOSITE_PREFIX}{self.id}"
        return self.id


@dataclass(frozen=True)
class LedgerEntry:
    """A logged serving entry for a day."""

    meal_id: int
    food_id: int | None
    macros: MacroProfile
    quantity: float = 1.0
    origin: str = "catalog"

    def consumed(self) -> MacroProfile:
        return self.macros.scaled(self.quantity)


@dataclass(frozen=True)
class NutritionContext:
    """Snapshot of a user's budgets for one suggestion job."""

    goal: NutritionGoal
    meal: MealDefinition
    day: date
    target_calories: float
    consumed_day: MacroProfile
    consumed_meal: MacroProfile
    remaining_day: MacroProfile
    remaining_meal: MacroProfile
    catalog: list[FoodItem] = field(default_factory=list)
    meal_food_refs: set[str | int] = field(default_factory=set)
    day_food_refs: set[str | int] = field(default_factory=set)

    @property
    def calorie_cap(self) -> float:
        """Calories a suggestion set may use."""
        return min(self.remaining_meal.calories, self.remaining_day.calories)

    def carbs_of(self, macros: MacroProfile) -> float:
        """Carbohydrates counted against the budget for these macros."""
        if self.goal.track_net_carbs:
            return macros.net_carbs_g()
        return macros.carbs_g
