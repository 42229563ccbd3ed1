"""Tests for suggestion job orchestration."""

import asyncio
import json
from datetime import timedelta
from uuid import uuid4

import pytest

from meal_assist.domain.errors import InvalidRequestError, OwnershipError
from meal_assist.domain.providers import ProviderConfig
from meal_assist.domain.suggestions import SuggestionJob, SuggestionMode
from tests.conftest import TODAY, food

PROGRESS = [
    "queued",
    "contacting_provider",
    "waiting_for_response",
    "parsing_response",
]


def _reply(*entries: tuple[object, int]) -> str:
    return json.dumps(
        {
            "suggestions": [
                {"food_id": ref, "quantity": quantity, "reason": "fits"}
                for ref, quantity in entries
            ]
        }
    )


async def _collect(service, user_id, job):
    stream = service.submit(user_id, job)
    return stream.request_id, [event async for event in stream.events()]


def _statuses(events) -> list[object]:
    return [event["status"] for event in events if "status" in event]


def test_scenario_balanced_meal_within_target(
    suggestion_service, openai_client, user_id
) -> None:
    openai_client.responses = [_reply((1, 2), (3, 2), (7, 1), (5, 1))]

    request_id, events = asyncio.run(
        _collect(suggestion_service, user_id, SuggestionJob(1, 600))
    )

    assert _statuses(events) == [*PROGRESS, "ready"]
    assert all(event["requestId"] == request_id for event in events)
    final = events[-1]
    names = {item["name"] for item in final["suggestions"]}
    assert "Chicken Breast" in names
    assert "Broccoli" in names
    assert 510 <= final["totals"]["calories"] <= 600
    assert any("debugPrompt" in event for event in events)
    assert any(event.get("rawResponse") for event in events)
    keys = {key for event in events for key in event}
    assert not keys & {"debug_prompt", "raw_response"}


def test_scenario_low_carb_room_rejects_carb_heavy_foods(
    suggestion_service, openai_client, nutrition_repository, user_id
) -> None:
    nutrition_repository.log(TODAY, 2, food(60, "Rice cakes", 760, carbs=190))
    openai_client.responses = [_reply((2, 1), (7, 1), (1, 2), (3, 1))]

    _, events = asyncio.run(
        _collect(suggestion_service, user_id, SuggestionJob(1, 600))
    )

    final = events[-1]
    assert final["status"] == "ready"
    per_serving_carbs = [
        item["carbs"] / item["quantity"] for item in final["suggestions"]
    ]
    assert per_serving_carbs
    assert all(carbs <= 10 for carbs in per_serving_carbs)
    assert final["totals"]["carbs"] <= 10
    prompt = openai_client.prompts[0]
    assert '"Brown Rice"' not in prompt


def test_scenario_unparseable_response_is_an_error(
    suggestion_service, openai_client, user_id
) -> None:
    openai_client.responses = ["Sorry, I can't produce a meal right now."]

    request_id, events = asyncio.run(
        _collect(suggestion_service, user_id, SuggestionJob(1, 600))
    )

    assert events[-1]["status"] == "error"
    assert "parse" in events[-1]["error"]
    status = suggestion_service.get_status(request_id, user_id)
    assert status["status"] == "error"
    assert status["rawResponse"] == "Sorry, I can't produce a meal right now."
    assert status["debugPrompt"]


def test_scenario_nothing_usable_anywhere_is_an_empty_result(
    suggestion_service, openai_client, nutrition_repository, user_id
) -> None:
    nutrition_repository.foods = [food(1, "Steak dinner", 700, protein=60, fat=40)]
    openai_client.responses = [_reply((1, 1))]

    _, events = asyncio.run(
        _collect(suggestion_service, user_id, SuggestionJob(1, 300))
    )

    assert events[-1] == {
        "requestId": events[-1]["requestId"],
        "status": "error",
        "error": "No foods fit the remaining budget for this meal",
    }


def test_empty_interpretation_uses_deterministic_fallback(
    suggestion_service, openai_client, user_id
) -> None:
    openai_client.responses = ['{"suggestions": []}']

    _, events = asyncio.run(
        _collect(suggestion_service, user_id, SuggestionJob(1, 600))
    )

    final = events[-1]
    assert final["status"] == "ready"
    assert [item["food_id"] for item in final["suggestions"]] == [1, 6, 5, 3]


def test_provider_failure_ends_in_error(
    suggestion_service, openai_client, user_id
) -> None:
    openai_client.responses = [RuntimeError("connection reset")]

    request_id, events = asyncio.run(
        _collect(suggestion_service, user_id, SuggestionJob(1, 600))
    )

    assert _statuses(events) == [
        "queued",
        "contacting_provider",
        "waiting_for_response",
        "error",
    ]
    assert "connection reset" in events[-1]["error"]
    assert suggestion_service.get_status(request_id, user_id)["status"] == "error"


def test_secondary_provider_answers_after_primary_fails(
    suggestion_service, openai_client, ollama_client, ai_config_repository, user_id
) -> None:
    ai_config_repository.configs[user_id] = ProviderConfig(
        openai_enabled=True,
        openai_api_key="sk-test",
        ollama_enabled=True,
        ollama_model="llama3",
    )
    openai_client.responses = [RuntimeError("quota exceeded")]
    ollama_client.responses = [_reply((1, 1), (3, 1))]

    _, events = asyncio.run(
        _collect(suggestion_service, user_id, SuggestionJob(1, 600))
    )

    assert events[-1]["status"] == "ready"
    raw_event = next(event for event in events if "rawResponse" in event)
    assert raw_event["provider"] == "ollama"


def test_missing_goal_fails_before_contacting_provider(
    suggestion_service, openai_client, nutrition_repository, user_id
) -> None:
    nutrition_repository.goal = None

    _, events = asyncio.run(
        _collect(suggestion_service, user_id, SuggestionJob(1, 600))
    )

    assert _statuses(events) == ["queued", "error"]
    assert events[-1]["error"] == "No active nutrition goal found"
    assert openai_client.prompts == []


def test_unexpected_failure_reports_generic_message(
    suggestion_service, nutrition_repository, user_id
) -> None:
    def broken(_user_id):  # type: ignore[no-untyped-def]
        raise RuntimeError("database exploded")

    nutrition_repository.list_foods = broken

    _, events = asyncio.run(
        _collect(suggestion_service, user_id, SuggestionJob(1, 600))
    )

    assert events[-1]["status"] == "error"
    assert events[-1]["error"] == "Failed to generate suggestions"


def test_missing_inputs_are_rejected_before_a_job_exists(
    suggestion_service, clock, user_id
) -> None:
    with pytest.raises(InvalidRequestError):
        suggestion_service.submit(user_id, SuggestionJob(0, 600))
    with pytest.raises(InvalidRequestError):
        suggestion_service.submit(user_id, SuggestionJob(1, 0))
    with pytest.raises(InvalidRequestError):
        suggestion_service.submit(user_id, SuggestionJob(1, 600, day="yesterday"))
    for target in (float("nan"), float("inf")):
        with pytest.raises(InvalidRequestError):
            suggestion_service.submit(user_id, SuggestionJob(1, target))

    clock.now += timedelta(hours=1)
    assert suggestion_service.tracker.sweep() == 0


def test_cancel_stops_job_at_next_stage(
    suggestion_service, openai_client, user_id
) -> None:
    openai_client.responses = [_reply((1, 1))]
    openai_client.delay_seconds = 0.05

    async def scenario():
        stream = suggestion_service.submit(user_id, SuggestionJob(1, 600))
        await asyncio.sleep(0.01)
        snapshot = suggestion_service.cancel(stream.request_id, user_id)
        events = [event async for event in stream.events()]
        return stream.request_id, snapshot, events

    request_id, snapshot, events = asyncio.run(scenario())

    assert snapshot["status"] == "cancelled"
    assert events[-1]["status"] == "cancelled"
    assert "ready" not in _statuses(events)
    status = suggestion_service.get_status(request_id, user_id)
    assert status["status"] == "cancelled"
    assert "suggestions" not in status


def test_only_the_owner_may_poll_or_cancel(
    suggestion_service, openai_client, user_id
) -> None:
    openai_client.responses = [_reply((1, 1))]
    request_id, _ = asyncio.run(
        _collect(suggestion_service, user_id, SuggestionJob(1, 600))
    )

    with pytest.raises(OwnershipError):
        suggestion_service.get_status(request_id, uuid4())
    with pytest.raises(OwnershipError):
        suggestion_service.cancel(request_id, uuid4())
    assert suggestion_service.cancel(request_id, user_id)["status"] == "ready"


def test_job_finishes_without_a_stream_consumer(
    suggestion_service, openai_client, user_id
) -> None:
    openai_client.responses = [_reply((1, 1), (3, 1))]

    async def scenario():
        stream = suggestion_service.submit(user_id, SuggestionJob(1, 600))
        for _ in range(100):
            status = suggestion_service.get_status(stream.request_id, user_id)
            if status["status"] == "ready":
                return status
            await asyncio.sleep(0.01)
        return status

    status = asyncio.run(scenario())

    assert status["status"] == "ready"
    assert [item["food_id"] for item in status["suggestions"]] == [1, 3]


def test_caller_exclusions_are_honored(
    suggestion_service, openai_client, user_id
) -> None:
    openai_client.responses = [_reply((1, 1), (3, 1))]
    job = SuggestionJob(1, 600, exclude_food_ids=[1])

    _, events = asyncio.run(_collect(suggestion_service, user_id, job))

    refs = [item["food_id"] for item in events[-1]["suggestions"]]
    assert 1 not in refs
    assert "Do NOT suggest these food ids (already offered): 1" in (
        openai_client.prompts[0]
    )


def test_single_item_mode_accepts_one_food(
    suggestion_service, openai_client, user_id
) -> None:
    openai_client.responses = [_reply((1, 1), (3, 1))]
    job = SuggestionJob(1, 300, mode=SuggestionMode.SINGLE_ITEM)

    _, events = asyncio.run(_collect(suggestion_service, user_id, job))

    assert [item["food_id"] for item in events[-1]["suggestions"]] == [1]
    assert "exactly ONE food" in openai_client.prompts[0]
