"""Suggestion job orchestration.

A submitted job runs as one asyncio task that walks the pipeline stages and
records every transition in the request tracker. Progress is pushed to a
per-job queue consumed by the streaming endpoint; the tracker alone backs
polling and cancellation, so a job keeps running after its stream goes away.
"""

import asyncio
import logging
import math
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from meal_assist.domain.errors import InvalidRequestError, SuggestionError
from meal_assist.domain.suggestions import (
    RequestStatus,
    SuggestionJob,
    SuggestionMode,
    SuggestionRequest,
    SuggestionResult,
)
from meal_assist.services.ai_config import AiConfigService
from meal_assist.services.budget import MAX_FALLBACK_ITEMS, enforce_budget
from meal_assist.services.candidates import MAX_CANDIDATES, select_candidates
from meal_assist.services.context import NutritionContextBuilder
from meal_assist.services.interpreter import interpret_response
from meal_assist.services.prompts import compose_prompt
from meal_assist.services.providers import ProviderGateway
from meal_assist.services.tracker import (
    CancellationToken,
    RequestTracker,
    status_payload,
)

GENERIC_FAILURE = "Failed to generate suggestions"
_MEAL_SHARE_ITEMS = 3

_logger = logging.getLogger(__name__)

Event = dict[str, object]
Emit = Callable[..., None]


class _Cancelled(Exception):
    """Raised inside a job once its record no longer accepts transitions."""


@dataclass
class SuggestionStream:
    """Progress events of one job, closed after the terminal event."""

    request_id: str
    queue: asyncio.Queue[Event | None]

    async def events(self) -> AsyncIterator[Event]:
        while True:
            event = await self.queue.get()
            if event is None:
                return
            yield event


@dataclass
class SuggestionService:
    """Runs suggestion jobs and answers status and cancel requests."""

    context_builder: NutritionContextBuilder
    gateway: ProviderGateway
    ai_config_service: AiConfigService
    tracker: RequestTracker
    max_candidates: int = MAX_CANDIDATES
    _tasks: set[asyncio.Task[None]] = field(default_factory=set)

    def submit(self, user_id: UUID, job: SuggestionJob) -> SuggestionStream:
        """Validate and register a job, then start it in the background."""
        day = _validate(job)
        record = self.tracker.create(user_id, job.meal_id)
        stream = SuggestionStream(request_id=record.request_id, queue=asyncio.Queue())
        stream.queue.put_nowait(
            {"requestId": record.request_id, "status": record.status.value}
        )
        task = asyncio.create_task(self._run(record, job, day, stream.queue))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        _logger.info(
            "Queued suggestion request %s for meal %s (%s)",
            record.request_id,
            job.meal_id,
            job.mode,
        )
        return stream

    def get_status(self, request_id: str, user_id: UUID) -> Event:
        """Return the owner's view of a job."""
        return status_payload(self.tracker.get_owned(request_id, user_id))

    def cancel(self, request_id: str, user_id: UUID) -> Event:
        """Cancel a job for its owner and return the resulting snapshot."""
        return status_payload(self.tracker.cancel(request_id, user_id))

    async def close(self) -> None:
        """Cancel jobs that are still running."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(
        self,
        record: SuggestionRequest,
        job: SuggestionJob,
        day: date | None,
        queue: asyncio.Queue[Event | None],
    ) -> None:
        request_id = record.request_id

        def emit(**fields: object) -> None:
            queue.put_nowait({"requestId": request_id, **fields})

        try:
            result = await self._execute(record, job, day, emit)
        except _Cancelled:
            emit(status=RequestStatus.CANCELLED.value)
        except SuggestionError as exc:
            _logger.warning("Suggestion request %s failed: %s", request_id, exc)
            self._fail(request_id, str(exc), emit)
        except Exception:
            _logger.exception("Suggestion request %s failed", request_id)
            self._fail(request_id, GENERIC_FAILURE, emit)
        else:
            if self.tracker.complete(request_id, result):
                emit(
                    status=RequestStatus.READY.value,
                    suggestions=result.suggestion_payloads(),
                    totals=result.totals.to_payload(),
                )
            else:
                emit(status=RequestStatus.CANCELLED.value)
        finally:
            queue.put_nowait(None)

    async def _execute(
        self,
        record: SuggestionRequest,
        job: SuggestionJob,
        day: date | None,
        emit: Emit,
    ) -> SuggestionResult:
        request_id = record.request_id
        token = self.tracker.token(request_id)

        context = await asyncio.to_thread(
            self.context_builder.build,
            record.user_id,
            job.meal_id,
            job.target_calories,
            day,
        )
        _ensure_live(token)
        single = job.mode == SuggestionMode.SINGLE_ITEM
        candidates = select_candidates(
            context,
            exclude_refs=job.exclude_food_ids,
            limit=self.max_candidates,
            expected_items=1 if single else _MEAL_SHARE_ITEMS,
        )
        prompt = compose_prompt(context, candidates, job)
        self.tracker.attach_prompt(request_id, prompt)
        emit(debugPrompt=prompt)

        self._advance(request_id, token, RequestStatus.CONTACTING_PROVIDER, emit)
        config = await asyncio.to_thread(
            self.ai_config_service.get_config, record.user_id
        )

        self._advance(request_id, token, RequestStatus.WAITING_FOR_RESPONSE, emit)
        reply = await self.gateway.generate(config, prompt)
        self.tracker.attach_response(request_id, reply.text, reply.provider)
        emit(rawResponse=reply.text, provider=reply.provider)

        self._advance(request_id, token, RequestStatus.PARSING_RESPONSE, emit)
        suggestions = interpret_response(reply.text, job.allow_new_foods)
        return enforce_budget(
            suggestions,
            context,
            candidates,
            exclude_refs=job.exclude_food_ids,
            max_items=1 if single else MAX_FALLBACK_ITEMS,
        )

    def _advance(
        self,
        request_id: str,
        token: CancellationToken,
        status: RequestStatus,
        emit: Emit,
    ) -> None:
        _ensure_live(token)
        if not self.tracker.advance(request_id, status):
            raise _Cancelled
        emit(status=status.value)

    def _fail(self, request_id: str, message: str, emit: Emit) -> None:
        if self.tracker.fail(request_id, message):
            emit(status=RequestStatus.ERROR.value, error=message)
        else:
            emit(status=RequestStatus.CANCELLED.value)


def _ensure_live(token: CancellationToken) -> None:
    if token.cancelled:
        raise _Cancelled


def _validate(job: SuggestionJob) -> date | None:
    if (
        not job.meal_id
        or not math.isfinite(job.target_calories)
        or job.target_calories <= 0
    ):
        raise InvalidRequestError("meal_id and target_calories are required")
    if not job.day:
        return None
    try:
        return date.fromisoformat(job.day)
    except ValueError as exc:
        raise InvalidRequestError(f"Invalid date: {job.day}") from exc
