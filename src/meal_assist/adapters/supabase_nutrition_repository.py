"""Supabase repository for goals, meals, foods and the daily log."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from supabase import Client

from meal_assist.domain.nutrition import (
    FoodItem,
    LedgerEntry,
    MacroProfile,
    MealDefinition,
    NutritionGoal,
)
from meal_assist.services.context import NutritionRepository

_FOOD_COLUMNS = (
    "id, name, serving_size, calories_per_serving, protein_per_serving, "
    "carbs_per_serving, fat_per_serving, fiber_per_serving"
)


@dataclass
class SupabaseNutritionRepository(NutritionRepository):
    """Supabase implementation of the nutrition read model."""

    client: Client

    def get_active_goal(self, user_id: UUID) -> NutritionGoal | None:
        """Return the most recent active goal."""
        response = (
            self.client.table("user_macro_goals")
            .select("*")
            .eq("user_id", str(user_id))
            .eq("is_active", True)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_goal(response.data[0])

    def get_meal(self, user_id: UUID, meal_id: int) -> MealDefinition | None:
        """Return a meal owned by the user."""
        response = (
            self.client.table("meals")
            .select("id, user_id, name, type")
            .eq("id", meal_id)
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return MealDefinition(
            id=int(row["id"]),
            user_id=UUID(str(row["user_id"])),
            name=str(row.get("name", "")),
            classification="snack" if row.get("type") == "snack" else "ordinary",
        )

    def list_foods(self, user_id: UUID) -> list[FoodItem]:
        """Return the user's active foods plus active common foods."""
        own = (
            self.client.table("foods")
            .select(_FOOD_COLUMNS)
            .eq("user_id", str(user_id))
            .eq("active", True)
            .execute()
        )
        common = (
            self.client.table("foods")
            .select(_FOOD_COLUMNS)
            .eq("is_common", True)
            .eq("active", True)
            .execute()
        )
        foods: dict[int, FoodItem] = {}
        for row in [*(own.data or []), *(common.data or [])]:
            food = _parse_food(row)
            if food.id is not None:
                foods.setdefault(food.id, food)
        return list(foods.values())

    def list_composite_foods(self, user_id: UUID) -> list[FoodItem]:
        """Return linked foods with component servings summed."""
        response = (
            self.client.table("linked_foods")
            .select("id, name")
            .eq("user_id", str(user_id))
            .execute()
        )
        rows = response.data or []
        if not rows:
            return []
        components = self._components([int(row["id"]) for row in rows])
        composites: list[FoodItem] = []
        for row in rows:
            parts = components.get(int(row["id"]), [])
            if not parts:
                continue
            macros = MacroProfile()
            for food, quantity in parts:
                macros = macros.plus(food.macros.scaled(quantity))
            composites.append(
                FoodItem(
                    id=int(row["id"]),
                    name=str(row.get("name", "")),
                    serving_size="1 serving",
                    macros=macros,
                    origin="composite",
                )
            )
        return composites

    def list_ledger_entries(self, user_id: UUID, day: date) -> list[LedgerEntry]:
        """Return meal plan entries logged on a day."""
        response = (
            self.client.table("meal_plans")
            .select("meal_id, food_id, linked_food_id, quantity")
            .eq("user_id", str(user_id))
            .eq("date", day.isoformat())
            .execute()
        )
        rows = response.data or []
        if not rows:
            return []
        food_ids = {int(row["food_id"]) for row in rows if row.get("food_id")}
        foods = {food.id: food for food in self._foods_by_id(food_ids)}
        composites: dict[int | None, FoodItem] = {}
        if any(row.get("linked_food_id") for row in rows):
            composites = {
                food.id: food for food in self.list_composite_foods(user_id)
            }
        entries: list[LedgerEntry] = []
        for row in rows:
            quantity = float(row.get("quantity") or 1.0)
            linked_id = row.get("linked_food_id")
            if linked_id:
                food = composites.get(int(linked_id))
            else:
                food = foods.get(int(row["food_id"])) if row.get("food_id") else None
            if food is None:
                continue
            entries.append(
                LedgerEntry(
                    meal_id=int(row["meal_id"]),
                    food_id=food.id,
                    macros=food.macros,
                    quantity=quantity,
                    origin=food.origin,
                )
            )
        return entries

    def _components(
        self, linked_ids: list[int]
    ) -> dict[int, list[tuple[FoodItem, float]]]:
        response = (
            self.client.table("linked_food_components")
            .select("linked_food_id, food_id, quantity")
            .in_("linked_food_id", linked_ids)
            .execute()
        )
        rows = response.data or []
        foods = {
            food.id: food
            for food in self._foods_by_id({int(row["food_id"]) for row in rows})
        }
        components: dict[int, list[tuple[FoodItem, float]]] = {}
        for row in rows:
            food = foods.get(int(row["food_id"]))
            if food is None:
                continue
            components.setdefault(int(row["linked_food_id"]), []).append(
                (food, float(row.get("quantity") or 1.0))
            )
        return components

    def _foods_by_id(self, food_ids: set[int]) -> list[FoodItem]:
        if not food_ids:
            return []
        response = (
            self.client.table("foods")
            .select(_FOOD_COLUMNS)
            .in_("id", sorted(food_ids))
            .execute()
        )
        return [_parse_food(row) for row in response.data or []]


def _parse_goal(row: dict[str, object]) -> NutritionGoal:
    return NutritionGoal(
        calories=float(row.get("calories") or 0.0),
        protein_g=float(row.get("protein") or 0.0),
        carbs_g=float(row.get("carbs") or 0.0),
        fat_g=float(row.get("fat") or 0.0),
        fiber_g=float(row.get("fiber") or 0.0),
        track_net_carbs=bool(row.get("track_net_carbs", False)),
    )


def _parse_food(row: dict[str, object]) -> FoodItem:
    """Parse a foods row into a catalog item."""
    return FoodItem(
        id=int(row["id"]) if row.get("id") is not None else None,
        name=str(row.get("name", "")),
        serving_size=str(row.get("serving_size") or "1 serving"),
        macros=MacroProfile(
            calories=float(row.get("calories_per_serving") or 0.0),
            protein_g=float(row.get("protein_per_serving") or 0.0),
            carbs_g=float(row.get("carbs_per_serving") or 0.0),
            fat_g=float(row.get("fat_per_serving") or 0.0),
            fiber_g=float(row.get("fiber_per_serving") or 0.0),
        ),
    )
