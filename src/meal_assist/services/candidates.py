"""Candidate food selection for suggestion prompts."""

from collections.abc import Iterable
from dataclasses import dataclass

from meal_assist.domain.nutrition import FoodItem, NutritionContext, parse_food_ref

MAX_CANDIDATES = 25
FIBER_EXHAUSTED_LIMIT_G = 0.5
CLOSENESS_WEIGHT = 0.6
PROTEIN_WEIGHT = 0.4
# Grams of protein per kcal treated as maximally dense (lean poultry, fish).
PROTEIN_DENSITY_CEILING = 0.25


@dataclass(frozen=True)
class _ScoredFood:
    food: FoodItem
    score: float


def select_candidates(
    context: NutritionContext,
    exclude_refs: Iterable[object] = (),
    limit: int = MAX_CANDIDATES,
    expected_items: int = 3,
) -> list[FoodItem]:
    """Return the bounded, ranked food list a provider may choose from."""
    excluded = {ref for ref in map(parse_food_ref, exclude_refs) if ref is not None}
    excluded |= context.meal_food_refs

    eligible = [
        food
        for food in context.catalog
        if _is_valid(food) and food.ref not in excluded and _fits_budget(food, context)
    ]
    varied = [food for food in eligible if food.ref not in context.day_food_refs]
    pool = varied or eligible

    share = context.target_calories / max(expected_items, 1)
    scored = sorted(
        (_ScoredFood(food=food, score=_score(food, share)) for food in pool),
        key=lambda item: item.score,
        reverse=True,
    )
    return [item.food for item in scored[:limit]]


def _is_valid(food: FoodItem) -> bool:
    if food.macros.calories <= 0:
        return False
    return parse_food_ref(food.ref) is not None


def _fits_budget(food: FoodItem, context: NutritionContext) -> bool:
    remaining = context.remaining_day
    if context.carbs_of(food.macros) > remaining.carbs_g:
        return False
    if food.macros.fat_g > remaining.fat_g:
        return False
    return not (
        remaining.fiber_g <= 0 and food.macros.fiber_g > FIBER_EXHAUSTED_LIMIT_G
    )


def _score(food: FoodItem, share: float) -> float:
    calories = food.macros.calories
    closeness = 0.0
    if share > 0:
        closeness = 1.0 - min(1.0, abs(calories - share) / share)
    density = min(1.0, (food.macros.protein_g / calories) / PROTEIN_DENSITY_CEILING)
    return CLOSENESS_WEIGHT * closeness + PROTEIN_WEIGHT * density
