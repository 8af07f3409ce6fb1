"""FastAPI application factory."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from pantry_planner.api.models import (
    CommitRequestPayload,
    FoodPayload,
    PlanRequestPayload,
    serialize_progress,
    serialize_result,
    serialize_targets,
)
from pantry_planner.app_logging import configure_logging
from pantry_planner.containers import AppContainer
from pantry_planner.domain.errors import PlanningError
from pantry_planner.domain.planning import PlanResult
from pantry_planner.nutrients import default_targets, registry
from pantry_planner.services.planning import resolve_horizon


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/nutrients")
    async def nutrients() -> dict[str, object]:
        """Return the registered nutrients and default daily targets."""
        return {
            "nutrients": registry(),
            "defaultTargets": serialize_targets(default_targets()),
        }

    @app.post("/plans")
    async def create_plan(
        payload: PlanRequestPayload, request: Request
    ) -> dict[str, object]:
        """Run a planning request and return the assembled plan."""
        state_container: AppContainer = request.app.state.container
        try:
            result = await asyncio.to_thread(
                state_container.planning_service.plan, payload.to_domain()
            )
        except PlanningError as exc:
            logger.warning("Planning request rejected: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
            ) from exc
        return serialize_result(result)

    @app.post("/plans/stream")
    async def stream_plan(
        payload: PlanRequestPayload, request: Request
    ) -> StreamingResponse:
        """Stream progress events as NDJSON, ending with the plan result."""
        state_container: AppContainer = request.app.state.container
        plan_request = payload.to_domain()
        try:
            resolve_horizon(plan_request)
        except PlanningError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
            ) from exc

        async def lines() -> AsyncIterator[str]:
            try:
                async for item in state_container.planning_service.stream(
                    plan_request
                ):
                    if isinstance(item, PlanResult):
                        body = {"type": "result", **serialize_result(item)}
                    else:
                        body = {"type": "progress", **serialize_progress(item)}
                    yield json.dumps(body) + "\n"
            except PlanningError as exc:
                logger.warning("Planning stream rejected: %s", exc)
                yield json.dumps({"type": "error", "detail": str(exc)}) + "\n"

        return StreamingResponse(lines(), media_type="application/x-ndjson")

    @app.post("/inventory/commit")
    async def commit_inventory(
        payload: CommitRequestPayload, request: Request
    ) -> dict[str, object]:
        """Apply a plan's consumption and purchases to the food list."""
        state_container: AppContainer = request.app.state.container
        foods = state_container.inventory_service.commit(
            [food.to_domain() for food in payload.foods],
            payload.consumption,
            payload.purchased,
        )
        return {
            "foods": [
                FoodPayload.from_domain(food).model_dump(mode="json", by_alias=True)
                for food in foods
            ]
        }

    return app
