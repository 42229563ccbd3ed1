"""Nutrition context for a suggestion job."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol
from uuid import UUID

from meal_assist.domain.errors import MealNotFoundError, MissingGoalError
from meal_assist.domain.nutrition import (
    FoodItem,
    LedgerEntry,
    MacroProfile,
    MealDefinition,
    NutritionContext,
    NutritionGoal,
)


class NutritionRepository(Protocol):
    """Read access to the user's goals, meals, foods and log."""

    def get_active_goal(self, user_id: UUID) -> NutritionGoal | None:
        """Return the user's active goal, if any."""

    def get_meal(self, user_id: UUID, meal_id: int) -> MealDefinition | None:
        """Return a meal owned by the user, if present."""

    def list_foods(self, user_id: UUID) -> list[FoodItem]:
        """Return active catalog foods visible to the user."""

    def list_composite_foods(self, user_id: UUID) -> list[FoodItem]:
        """Return linked foods with component macros already summed."""

    def list_ledger_entries(self, user_id: UUID, day: date) -> list[LedgerEntry]:
        """Return entries logged by the user on a day."""


@dataclass
class NutritionContextBuilder:
    """Computes consumed totals and remaining budgets."""

    repository: NutritionRepository
    today: Callable[[], date] = field(default=date.today)

    def build(
        self,
        user_id: UUID,
        meal_id: int,
        target_calories: float,
        day: date | None = None,
    ) -> NutritionContext:
        """Snapshot budgets and catalog for a meal on a day."""
        goal = self.repository.get_active_goal(user_id)
        if goal is None:
            raise MissingGoalError("No active nutrition goal found")
        meal = self.repository.get_meal(user_id, meal_id)
        if meal is None:
            raise MealNotFoundError(f"Meal {meal_id} not found")

        resolved_day = day or self.today()
        entries = self.repository.list_ledger_entries(user_id, resolved_day)
        consumed_day = _sum_entries(entries)
        consumed_meal = _sum_entries(
            [entry for entry in entries if entry.meal_id == meal_id]
        )

        remaining_day = _remaining(goal.as_profile(), consumed_day, goal)
        ratio = target_calories / goal.calories if goal.calories > 0 else 0.0
        meal_goal = goal.as_profile().scaled(ratio)
        remaining_meal = _remaining(meal_goal, consumed_meal, goal)

        catalog = [
            *self.repository.list_foods(user_id),
            *self.repository.list_composite_foods(user_id),
        ]
        return NutritionContext(
            goal=goal,
            meal=meal,
            day=resolved_day,
            target_calories=float(target_calories),
            consumed_day=consumed_day,
            consumed_meal=consumed_meal,
            remaining_day=remaining_day,
            remaining_meal=remaining_meal,
            catalog=catalog,
            meal_food_refs={
                _entry_ref(entry)
                for entry in entries
                if entry.meal_id == meal_id and entry.food_id is not None
            },
            day_food_refs={
                _entry_ref(entry) for entry in entries if entry.food_id is not None
            },
        )


def _sum_entries(entries: list[LedgerEntry]) -> MacroProfile:
    total = MacroProfile()
    for entry in entries:
        total = total.plus(entry.consumed())
    return total


def _remaining(
    budget: MacroProfile, consumed: MacroProfile, goal: NutritionGoal
) -> MacroProfile:
    consumed_carbs = (
        consumed.net_carbs_g() if goal.track_net_carbs else consumed.carbs_g
    )
    return MacroProfile(
        calories=max(0.0, budget.calories - consumed.calories),
        protein_g=max(0.0, budget.protein_g - consumed.protein_g),
        carbs_g=max(0.0, budget.carbs_g - consumed_carbs),
        fat_g=max(0.0, budget.fat_g - consumed.fat_g),
        fiber_g=max(0.0, budget.fiber_g - consumed.fiber_g),
    )


def _entry_ref(entry: LedgerEntry) -> str | int | None:
    return FoodItem(
        id=entry.food_id,
        name="",
        serving_size="",
        macros=entry.macros,
        origin=entry.origin,
    ).ref
