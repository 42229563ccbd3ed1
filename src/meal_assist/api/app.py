"""FastAPI application factory."""

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from uuid import UUID

from fastapi import FastAPI, Header, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from meal_assist.api.models import SuggestRequest
from meal_assist.app_logging import configure_logging
from meal_assist.containers import AppContainer
from meal_assist.domain.errors import (
    InvalidRequestError,
    OwnershipError,
    RequestNotFoundError,
)
from meal_assist.domain.providers import ProviderConfig
from meal_assist.services.tracker import RequestTracker


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        sweeper = asyncio.create_task(
            _sweep_forever(
                state_container.request_tracker,
                state_container.settings.sweep_interval_seconds,
                logger,
            )
        )
        yield
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/api/ai/suggest")
    async def suggest(
        payload: SuggestRequest,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> StreamingResponse:
        """Start a suggestion job and stream its progress as server-sent events."""
        state_container: AppContainer = request.app.state.container
        user_id = _require_user(x_user_id)
        try:
            stream = state_container.suggestion_service.submit(
                user_id, payload.to_job()
            )
        except InvalidRequestError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
            ) from exc
        return StreamingResponse(
            _server_sent_events(stream.events()),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.get("/api/ai/status/{request_id}")
    async def suggestion_status(
        request_id: str,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, object]:
        """Return the current state of a suggestion job."""
        state_container: AppContainer = request.app.state.container
        user_id = _require_user(x_user_id)
        try:
            return state_container.suggestion_service.get_status(request_id, user_id)
        except (OwnershipError, RequestNotFoundError) as exc:
            raise _lookup_error(exc) from exc

    @app.post("/api/ai/cancel/{request_id}")
    async def cancel_suggestion(
        request_id: str,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, object]:
        """Cancel a suggestion job owned by the caller."""
        state_container: AppContainer = request.app.state.container
        user_id = _require_user(x_user_id)
        try:
            return state_container.suggestion_service.cancel(request_id, user_id)
        except (OwnershipError, RequestNotFoundError) as exc:
            raise _lookup_error(exc) from exc

    @app.get("/api/ai-config")
    async def get_ai_config(
        request: Request, x_user_id: str | None = Header(default=None)
    ) -> ProviderConfig:
        """Return the caller's provider settings."""
        state_container: AppContainer = request.app.state.container
        return state_container.ai_config_service.get_config(_require_user(x_user_id))

    @app.post("/api/ai-config")
    async def save_ai_config(
        config: ProviderConfig,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, object]:
        """Replace the caller's provider settings."""
        state_container: AppContainer = request.app.state.container
        saved = state_container.ai_config_service.save_config(
            _require_user(x_user_id), config
        )
        logger.info("Updated AI configuration")
        return {
            "message": "AI configuration updated successfully",
            "config": saved.model_dump(),
        }

    @app.get("/api/ai-models")
    async def list_ai_models(
        request: Request, x_user_id: str | None = Header(default=None)
    ) -> dict[str, list[dict[str, object]]]:
        """List models offered by the caller's enabled providers."""
        state_container: AppContainer = request.app.state.container
        config = state_container.ai_config_service.get_config(
            _require_user(x_user_id)
        )
        models = await state_container.provider_gateway.list_models(config)
        return {
            provider: [asdict(model) for model in entries]
            for provider, entries in models.items()
        }

    return app


async def _server_sent_events(
    events: AsyncIterator[dict[str, object]],
) -> AsyncIterator[str]:
    async for event in events:
        yield f"data: {json.dumps(event)}\n\n"


async def _sweep_forever(
    tracker: RequestTracker, interval_seconds: float, logger: logging.Logger
) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            tracker.sweep()
        except Exception:
            logger.exception("Failed to sweep suggestion requests")


def _require_user(raw: str | None) -> UUID:
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    try:
        return UUID(raw)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED) from exc


def _lookup_error(exc: OwnershipError | RequestNotFoundError) -> HTTPException:
    if isinstance(exc, OwnershipError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
