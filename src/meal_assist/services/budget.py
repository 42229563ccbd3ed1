"""Hard budget enforcement and the deterministic fallback selector."""

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, replace

from meal_assist.domain.errors import EmptyResultError
from meal_assist.domain.nutrition import (
    FoodItem,
    MacroProfile,
    NutritionContext,
    parse_food_ref,
)
from meal_assist.domain.suggestions import (
    CompositeFoodSuggestion,
    EnrichedSuggestion,
    ExistingFoodSuggestion,
    NewFoodSuggestion,
    Suggestion,
    SuggestionResult,
    SuggestionTotals,
)

STOP_RATIO = 0.95
MAX_FALLBACK_ITEMS = 4
FALLBACK_REASON = "High-protein pick that fits your remaining budget"
_EPSILON = 1e-9

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Accepted:
    suggestion: Suggestion
    food: FoodItem


def enforce_budget(
    suggestions: list[Suggestion],
    context: NutritionContext,
    candidates: list[FoodItem],
    exclude_refs: Iterable[object] = (),
    max_items: int = MAX_FALLBACK_ITEMS,
) -> SuggestionResult:
    """Cap suggestions to the budget, falling back when nothing survives."""
    excluded = {ref for ref in map(parse_food_ref, exclude_refs) if ref is not None}
    excluded |= context.meal_food_refs
    accepted = _cap_suggestions(suggestions, context, excluded)[:max_items]
    used_fallback = False
    if not accepted:
        suggested = {item.ref for item in suggestions if item.ref is not None}
        limit = min(max_items, MAX_FALLBACK_ITEMS)
        accepted = _fallback(context, candidates, excluded | suggested, limit)
        used_fallback = True
        _logger.info(
            "Deterministic fallback selected %s foods for meal %s",
            len(accepted),
            context.meal.id,
        )
    if not accepted:
        raise EmptyResultError("No foods fit the remaining budget for this meal")
    return _enrich(accepted, used_fallback)


def _cap_suggestions(
    suggestions: list[Suggestion],
    context: NutritionContext,
    excluded: set[str | int],
) -> list[_Accepted]:
    catalog = {food.ref: food for food in context.catalog}
    cap = context.calorie_cap
    running = MacroProfile()
    accepted: list[_Accepted] = []
    seen: set[str | int] = set()
    for suggestion in suggestions:
        if running.calories >= STOP_RATIO * cap:
            break
        food = _resolve(suggestion, catalog)
        if food is None or suggestion.ref in excluded or suggestion.ref in seen:
            continue
        quantity = min(suggestion.quantity, _max_servings(food, running, context))
        if quantity < 1:
            continue
        if suggestion.ref is not None:
            seen.add(suggestion.ref)
        accepted.append(_Accepted(replace(suggestion, quantity=quantity), food))
        running = running.plus(food.macros.scaled(quantity))
    return accepted


def _fallback(
    context: NutritionContext,
    candidates: list[FoodItem],
    excluded: set[str | int],
    limit: int,
) -> list[_Accepted]:
    pool = sorted(
        (food for food in candidates if food.ref not in excluded),
        key=lambda food: (food.macros.protein_g, food.macros.calories),
        reverse=True,
    )
    running = MacroProfile()
    accepted: list[_Accepted] = []
    for food in pool:
        if len(accepted) >= limit:
            break
        if food.id is None or _max_servings(food, running, context) < 1:
            continue
        accepted.append(_Accepted(_fallback_suggestion(food), food))
        running = running.plus(food.macros)
    return accepted


def _fallback_suggestion(food: FoodItem) -> Suggestion:
    if food.origin == "composite":
        return CompositeFoodSuggestion(
            composite_id=food.id, quantity=1, reason=FALLBACK_REASON
        )
    return ExistingFoodSuggestion(food_id=food.id, quantity=1, reason=FALLBACK_REASON)


def _resolve(
    suggestion: Suggestion, catalog: dict[str | int | None, FoodItem]
) -> FoodItem | None:
    if isinstance(suggestion, NewFoodSuggestion):
        if suggestion.macros.calories <= 0:
            return None
        return FoodItem(
            id=None,
            name=suggestion.name,
            serving_size=suggestion.serving_size,
            macros=suggestion.macros,
            origin="new",
        )
    return catalog.get(suggestion.ref)


def _max_servings(
    food: FoodItem, running: MacroProfile, context: NutritionContext
) -> int:
    """Largest whole number of servings that keeps every hard limit."""
    remaining = context.remaining_day
    limits = [
        (context.calorie_cap - running.calories, food.macros.calories),
        (
            remaining.carbs_g - context.carbs_of(running),
            context.carbs_of(food.macros),
        ),
        (remaining.fat_g - running.fat_g, food.macros.fat_g),
    ]
    servings = math.inf
    for room, per_serving in limits:
        if per_serving <= 0:
            continue
        servings = min(servings, math.floor((room + _EPSILON) / per_serving))
    if servings == math.inf:
        return 0
    return max(0, int(servings))


def _enrich(accepted: list[_Accepted], used_fallback: bool) -> SuggestionResult:
    enriched: list[EnrichedSuggestion] = []
    total = MacroProfile()
    for item in accepted:
        nutrition = item.food.macros.scaled(item.suggestion.quantity)
        total = total.plus(nutrition)
        enriched.append(
            EnrichedSuggestion(
                suggestion=item.suggestion,
                name=item.food.name,
                serving_size=item.food.serving_size,
                nutrition=nutrition,
            )
        )
    return SuggestionResult(
        suggestions=enriched,
        totals=SuggestionTotals(
            calories=total.calories,
            protein_g=total.protein_g,
            carbs_g=total.carbs_g,
            fat_g=total.fat_g,
            fiber_g=total.fiber_g,
        ),
        used_fallback=used_fallback,
    )
