"""Prompt rendering for suggestion jobs."""

import json
from collections.abc import Iterable

from meal_assist.domain.nutrition import FoodItem, NutritionContext
from meal_assist.domain.suggestions import SuggestionJob, SuggestionMode

MIN_MEAL_ITEMS = 2
MAX_MEAL_ITEMS = 4
SNACK_MAX_ITEMS = 2

_EXISTING_SHAPE = (
    '{"food_id": <id from the list>, "quantity": <whole number >= 1>, '
    '"reason": "<short reason>"}'
)
_NEW_SHAPE = (
    '{"is_new": true, "name": "<food name>", "serving_size": "<e.g. 100g>", '
    '"calories": <per serving>, "protein": <g>, "carbs": <g>, "fat": <g>, '
    '"fiber": <g>, "quantity": <whole number >= 1>, "reason": "<short reason>"}'
)


def suggestion_count(
    context: NutritionContext, candidates: list[FoodItem], allow_new_foods: bool
) -> int:
    """Return how many foods a meal prompt should ask for."""
    pool_size = len(candidates)
    if pool_size >= 10:
        count = MAX_MEAL_ITEMS
    elif pool_size >= 4:
        count = 3
    else:
        count = MIN_MEAL_ITEMS
    if allow_new_foods:
        count = max(count, 3)
    if context.meal.is_snack:
        count = min(count, SNACK_MAX_ITEMS)
    return max(MIN_MEAL_ITEMS, min(count, MAX_MEAL_ITEMS))


def compose_prompt(
    context: NutritionContext, candidates: list[FoodItem], job: SuggestionJob
) -> str:
    """Render the provider prompt for a job."""
    if job.mode == SuggestionMode.SINGLE_ITEM:
        lines = _single_item_lines(context, job)
    else:
        lines = _meal_lines(context, candidates, job)
    lines.extend(_shared_lines(context, candidates, job))
    return "\n".join(lines)


def _limits(context: NutritionContext) -> tuple[int, float, float]:
    remaining = context.remaining_day
    return (
        round(context.calorie_cap),
        round(remaining.carbs_g, 1),
        round(remaining.fat_g, 1),
    )


def _carb_label(context: NutritionContext) -> str:
    return "net carbs (carbs minus fiber)" if context.goal.track_net_carbs else "carbs"


def _single_item_lines(context: NutritionContext, job: SuggestionJob) -> list[str]:
    calories, carbs, fat = _limits(context)
    carb_label = _carb_label(context)
    return [
        "You are a nutrition assistant helping fill a meal.",
        f'Suggest exactly ONE food for the meal "{context.meal.name}".',
        "The quantity must be a whole number of servings, at least 1.",
        "HARD LIMITS for the suggestion (quantity x per-serving values):",
        f"- calories must not exceed {calories}",
        f"- {carb_label} must not exceed {carbs} g",
        f"- fat must not exceed {fat} g",
        "Protein and fiber are NOT constrained; more protein is welcome.",
        "Respond with JSON only, no prose and no markdown, in exactly this shape:",
        f'{{"suggestions": [{_EXISTING_SHAPE}]}}',
        *_new_food_contract(job),
    ]


def _meal_lines(
    context: NutritionContext, candidates: list[FoodItem], job: SuggestionJob
) -> list[str]:
    calories, carbs, fat = _limits(context)
    carb_label = _carb_label(context)
    count = suggestion_count(context, candidates, job.allow_new_foods)
    return [
        "You are a nutrition assistant planning a single meal.",
        f'Suggest {count} foods that together make the meal "{context.meal.name}".',
        f"Aim for about {round(job.target_calories)} calories in total.",
        "Quantities must be whole numbers of servings, at least 1 each.",
        "HARD LIMITS for the whole meal (sum of quantity x per-serving values):",
        f"- total calories must not exceed {calories}",
        f"- total {carb_label} must not exceed {carbs} g",
        f"- total fat must not exceed {fat} g",
        "Keep a running total as you pick each food: after every item add its "
        "calories, carbs and fat to the totals so far and check them against "
        "the limits. Drop or reduce an item that would break a limit.",
        "COMPOSITION RULES (mandatory):",
        "- include at least one protein food (meat, fish, eggs, dairy, legumes, tofu)",
        "- include at least one fruit or vegetable",
        "- pick foods that are realistically eaten together; avoid odd "
        "combinations such as cereal with fish",
        "Respond with JSON only, no prose and no markdown, in exactly this shape:",
        f'{{"suggestions": [{_EXISTING_SHAPE}, ...]}}',
        *_new_food_contract(job),
    ]


def _new_food_contract(job: SuggestionJob) -> list[str]:
    if not job.allow_new_foods:
        return ["Only use foods from the list below."]
    return [
        "Prefer foods from the list below. If the list lacks something the "
        "meal needs, you may add a new food in this shape instead:",
        _NEW_SHAPE,
    ]


def _shared_lines(
    context: NutritionContext, candidates: list[FoodItem], job: SuggestionJob
) -> list[str]:
    lines: list[str] = []
    if job.exclude_food_ids:
        excluded = ", ".join(str(ref) for ref in job.exclude_food_ids)
        lines.append(f"Do NOT suggest these food ids (already offered): {excluded}")
    lines.append(
        "Available foods (per serving). Use only these ids for existing foods:"
    )
    lines.append(json.dumps(_serialize_candidates(context, candidates)))
    if job.preferences:
        lines.append(f"User preferences: {job.preferences}")
    return lines


def _serialize_candidates(
    context: NutritionContext, candidates: Iterable[FoodItem]
) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for food in candidates:
        macros = food.macros
        row: dict[str, object] = {
            "id": food.ref,
            "name": food.name,
            "serving_size": food.serving_size,
            "calories": round(macros.calories),
            "protein": round(macros.protein_g, 1),
            "carbs": round(macros.carbs_g, 1),
            "fat": round(macros.fat_g, 1),
            "fiber": round(macros.fiber_g, 1),
        }
        if context.goal.track_net_carbs:
            row["net_carbs"] = round(macros.net_carbs_g(), 1)
        rows.append(row)
    return rows
