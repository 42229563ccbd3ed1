"""Interpretation of free-form provider output into suggestions.

Providers are asked for JSON but routinely wrap it in markdown fences, add
prose around it, or stop mid-object. Parsing therefore runs in two passes:

1. Strip fences, cut out the first balanced ``[...]`` list or ``{...}`` object
   (whichever opens first) and parse it.
2. If that fails, salvage ``{food_id, quantity}`` pairs with a narrow pattern.
   Salvage is lossy: reasons, new foods and anything beyond the first
   ``MAX_SALVAGED`` entries are discarded.
"""

import json
import logging
import math
import re

from meal_assist.domain.errors import ParseError
from meal_assist.domain.nutrition import COMPOSITE_PREFIX, MacroProfile, parse_food_ref
from meal_assist.domain.suggestions import (
    CompositeFoodSuggestion,
    ExistingFoodSuggestion,
    NewFoodSuggestion,
    Suggestion,
)

MAX_SALVAGED = 4
_LIST_KEYS = ("suggestions", "foods", "items")

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_CHUNK_RE = re.compile(r"\{[^{}]*\}?")
_ID_RE = re.compile(r'"(?:food_id|id)"\s*:\s*"?(linked_\d+|\d+)"?')
_QUANTITY_RE = re.compile(r'"quantity"\s*:\s*"?(\d+(?:\.\d+)?)')

_logger = logging.getLogger(__name__)


def interpret_response(text: str, allow_new_foods: bool) -> list[Suggestion]:
    """Parse provider text and normalize it into canonical suggestions."""
    entries = parse_provider_text(text)
    return normalize_entries(entries, allow_new_foods=allow_new_foods)


def parse_provider_text(text: str) -> list[dict[str, object]]:
    """Return raw suggestion entries, raising ParseError when none are found."""
    cleaned = strip_code_fences(text)
    entries = _parse_structured(cleaned)
    if entries is not None:
        return entries

    salvaged = salvage_entries(cleaned)
    if salvaged:
        _logger.info("Salvaged %s entries from malformed output", len(salvaged))
        return salvaged
    raise ParseError("Could not parse suggestions from the AI response")


def strip_code_fences(text: str) -> str:
    """Return the contents of the first markdown code fence, if any."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.replace("```json", "").replace("```", "").strip()


def extract_json_object(text: str) -> str | None:
    """Return the object opened by the first ``{`` if its braces balance."""
    return _balanced(text, "{", "}")


def extract_json_array(text: str) -> str | None:
    """Return the list opened by the first ``[`` if its brackets balance."""
    return _balanced(text, "[", "]")


def _balanced(text: str, opener: str, closer: str) -> str | None:
    start = text.find(opener)
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def salvage_entries(text: str) -> list[dict[str, object]]:
    """Recover ``{food_id, quantity}`` pairs from malformed output."""
    salvaged: list[dict[str, object]] = []
    for chunk in _CHUNK_RE.findall(text):
        id_match = _ID_RE.search(chunk)
        quantity_match = _QUANTITY_RE.search(chunk)
        if not id_match or not quantity_match:
            continue
        salvaged.append(
            {
                "food_id": id_match.group(1),
                "quantity": float(quantity_match.group(1)),
            }
        )
        if len(salvaged) >= MAX_SALVAGED:
            break
    return salvaged


def normalize_entries(
    entries: list[dict[str, object]], allow_new_foods: bool
) -> list[Suggestion]:
    """Convert raw entries to suggestions, dropping incomplete ones."""
    suggestions: list[Suggestion] = []
    for entry in entries:
        suggestion = _normalize_entry(entry, allow_new_foods)
        if suggestion is None:
            _logger.debug("Dropping provider entry: %s", entry)
            continue
        suggestions.append(suggestion)
    return suggestions


def whole_quantity(value: object) -> int | None:
    """Floor a provider quantity to whole servings, minimum one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int | float) or not math.isfinite(value) or value <= 0:
        return None
    return max(1, math.floor(value))


def _parse_structured(text: str) -> list[dict[str, object]] | None:
    candidates: list[str] = []
    list_start = text.find("[")
    object_start = text.find("{")
    if list_start != -1 and (object_start == -1 or list_start < object_start):
        array_text = extract_json_array(text)
        if array_text is None:
            # truncated list; its first element alone would hide the rest
            return None
        candidates.append(array_text)
    object_text = extract_json_object(text)
    if object_text:
        candidates.append(object_text)
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        entries = _entries_from(data)
        if entries is not None:
            return entries
    return None


def _entries_from(data: object) -> list[dict[str, object]] | None:
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if not isinstance(data, dict):
        return None
    for key in _LIST_KEYS:
        value = data.get(key)
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
    if any(key in data for key in ("food_id", "id", "name")):
        return [data]
    return None


def _normalize_entry(
    entry: dict[str, object], allow_new_foods: bool
) -> Suggestion | None:
    quantity = whole_quantity(entry.get("quantity"))
    if quantity is None:
        return None
    reason = str(entry.get("reason") or "").strip()

    ref = parse_food_ref(entry.get("food_id", entry.get("id")))
    if entry.get("is_new") is not True and ref is not None:
        if isinstance(ref, str):
            composite_id = int(ref[len(COMPOSITE_PREFIX) :])
            return CompositeFoodSuggestion(
                composite_id=composite_id, quantity=quantity, reason=reason
            )
        return ExistingFoodSuggestion(food_id=ref, quantity=quantity, reason=reason)

    if not allow_new_foods:
        return None
    name = str(entry.get("name") or "").strip()
    calories = _number(entry.get("calories"))
    if not name or calories is None:
        return None
    return NewFoodSuggestion(
        name=name,
        serving_size=str(entry.get("serving_size") or "1 serving"),
        macros=MacroProfile(
            calories=calories,
            protein_g=_number(entry.get("protein")) or 0.0,
            carbs_g=_number(entry.get("carbs")) or 0.0,
            fat_g=_number(entry.get("fat")) or 0.0,
            fiber_g=_number(entry.get("fiber")) or 0.0,
        ),
        quantity=quantity,
        reason=reason,
    )


def _number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if math.isfinite(value) and value >= 0 else None
    if isinstance(value, str):
        try:
            return _number(float(value.strip()))
        except ValueError:
            return None
    return None
