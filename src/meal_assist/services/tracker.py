"""Registry of suggestion jobs shared by the pipeline and the poll/cancel API."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID, uuid4

from meal_assist.domain.errors import OwnershipError, RequestNotFoundError
from meal_assist.domain.suggestions import (
    RequestStatus,
    SuggestionRequest,
    SuggestionResult,
)

_logger = logging.getLogger(__name__)


class RequestStore(Protocol):
    """Storage interface for suggestion job records."""

    def create(self, record: SuggestionRequest) -> None:
        """Store a new record."""

    def get(self, request_id: str) -> SuggestionRequest | None:
        """Return a record by id, if present."""

    def update(
        self,
        request_id: str,
        mutate: Callable[[SuggestionRequest], SuggestionRequest],
    ) -> SuggestionRequest | None:
        """Atomically replace a record with ``mutate(record)``."""

    def delete_created_before(self, cutoff: datetime) -> list[str]:
        """Delete records created before the cutoff and return their ids."""


@dataclass
class InMemoryRequestStore(RequestStore):
    """Process-local store guarded by a lock."""

    _records: dict[str, SuggestionRequest]
    _lock: threading.Lock

    def __init__(self) -> None:
        self._records = {}
        self._lock = threading.Lock()

    def create(self, record: SuggestionRequest) -> None:
        with self._lock:
            self._records[record.request_id] = record

    def get(self, request_id: str) -> SuggestionRequest | None:
        with self._lock:
            return self._records.get(request_id)

    def update(
        self,
        request_id: str,
        mutate: Callable[[SuggestionRequest], SuggestionRequest],
    ) -> SuggestionRequest | None:
        with self._lock:
            current = self._records.get(request_id)
            if current is None:
                return None
            updated = mutate(current)
            self._records[request_id] = updated
            return updated

    def delete_created_before(self, cutoff: datetime) -> list[str]:
        with self._lock:
            expired = [
                request_id
                for request_id, record in self._records.items()
                if record.created_at < cutoff
            ]
            for request_id in expired:
                del self._records[request_id]
            return expired


@dataclass
class CancellationToken:
    """Cooperative cancellation flag checked between pipeline stages."""

    _event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _unless_finished(
    **changes: object,
) -> Callable[[SuggestionRequest], SuggestionRequest]:
    def mutate(record: SuggestionRequest) -> SuggestionRequest:
        if record.status.is_terminal:
            return record
        return replace(record, **changes)

    return mutate


@dataclass
class RequestTracker:
    """Owns job lifecycle transitions, ownership checks and retention."""

    store: RequestStore
    retention: timedelta = timedelta(minutes=30)
    clock: Callable[[], datetime] = _utcnow
    _tokens: dict[str, CancellationToken] = field(default_factory=dict)

    def create(self, user_id: UUID, meal_id: int) -> SuggestionRequest:
        """Register a queued job and its cancellation token."""
        record = SuggestionRequest(
            request_id=uuid4().hex,
            user_id=user_id,
            meal_id=meal_id,
            status=RequestStatus.QUEUED,
            created_at=self.clock(),
        )
        self.store.create(record)
        self._tokens[record.request_id] = CancellationToken()
        return record

    def token(self, request_id: str) -> CancellationToken:
        """Return the cancellation token for a job."""
        return self._tokens.setdefault(request_id, CancellationToken())

    def advance(self, request_id: str, status: RequestStatus) -> bool:
        """Move a live job to a new stage; False when it is gone or finished."""
        updated = self.store.update(request_id, _unless_finished(status=status))
        return updated is not None and updated.status == status

    def attach_prompt(self, request_id: str, prompt: str) -> None:
        self.store.update(
            request_id, lambda record: replace(record, debug_prompt=prompt)
        )

    def attach_response(
        self, request_id: str, raw_response: str, provider: str
    ) -> None:
        self.store.update(
            request_id,
            lambda record: replace(
                record, raw_response=raw_response, provider=provider
            ),
        )

    def complete(self, request_id: str, result: SuggestionResult) -> bool:
        """Mark a job ready unless it was cancelled or already finished."""
        updated = self.store.update(
            request_id, _unless_finished(status=RequestStatus.READY, result=result)
        )
        return updated is not None and updated.status == RequestStatus.READY

    def fail(self, request_id: str, message: str) -> bool:
        """Mark a job failed unless it was cancelled or already finished."""
        updated = self.store.update(
            request_id, _unless_finished(status=RequestStatus.ERROR, error=message)
        )
        return updated is not None and updated.status == RequestStatus.ERROR

    def get_owned(self, request_id: str, user_id: UUID) -> SuggestionRequest:
        """Return a job visible to its owner."""
        record = self.store.get(request_id)
        if record is None:
            raise RequestNotFoundError("Request not found")
        if record.user_id != user_id:
            raise OwnershipError("Request belongs to another user")
        return record

    def cancel(self, request_id: str, user_id: UUID) -> SuggestionRequest:
        """Cancel a job on behalf of its owner; finished jobs are left as is."""
        self.get_owned(request_id, user_id)
        self.token(request_id).cancel()
        updated = self.store.update(
            request_id, _unless_finished(status=RequestStatus.CANCELLED)
        )
        if updated is None:
            raise RequestNotFoundError("Request not found")
        _logger.info("Suggestion request %s is %s", request_id, updated.status)
        return updated

    def sweep(self) -> int:
        """Delete jobs older than the retention window."""
        cutoff = self.clock() - self.retention
        expired = self.store.delete_created_before(cutoff)
        for request_id in expired:
            self._tokens.pop(request_id, None)
        if expired:
            _logger.info("Swept %s expired suggestion requests", len(expired))
        return len(expired)


def status_payload(record: SuggestionRequest) -> dict[str, object]:
    """Client-facing snapshot of a job."""
    status = record.status
    if status == RequestStatus.PARSING_RESPONSE and record.result is None:
        status = RequestStatus.WAITING_FOR_RESPONSE
    payload: dict[str, object] = {
        "requestId": record.request_id,
        "status": status.value,
    }
    if record.error is not None:
        payload["error"] = record.error
    if record.result is not None:
        payload["suggestions"] = record.result.suggestion_payloads()
        payload["totals"] = record.result.totals.to_payload()
    if record.debug_prompt is not None:
        payload["debugPrompt"] = record.debug_prompt
    if record.raw_response is not None:
        payload["rawResponse"] = record.raw_response
    return payload
