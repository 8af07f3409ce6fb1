"""Planning service: validates requests, runs the search, assembles plans."""

import asyncio
import logging
import math
import threading
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass
from datetime import date

from pantry_planner.config import Settings, parse_tracked_nutrients
from pantry_planner.domain.errors import InvalidHorizonError, InvalidInventoryError
from pantry_planner.domain.foods import AlreadyConsumed, FoodDefinition, TargetRange
from pantry_planner.domain.planning import (
    PlanHorizon,
    PlanRequest,
    PlanResult,
    ProgressEvent,
)
from pantry_planner.nutrients import NutrientDefinition, get_nutrient, resolve_nutrients
from pantry_planner.services.assembler import PlanAssembler, infeasible_result
from pantry_planner.services.fitness import FitnessEvaluator
from pantry_planner.services.optimizer import (
    GeneticOptimizer,
    ProgressListener,
    SearchParameters,
)
from pantry_planner.services.penalties import NutrientPenaltyModel, WasteRiskModel
from pantry_planner.services.unit_pool import build_unit_pool

_logger = logging.getLogger(__name__)


@dataclass
class PlanningService:
    """Runs planning requests end to end."""

    settings: Settings

    def plan(
        self,
        request: PlanRequest,
        on_progress: ProgressListener | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> PlanResult:
        """Plan synchronously, reporting progress to an optional listener."""
        horizon = resolve_horizon(request)
        nutrients = self._tracked_nutrients(request.targets)
        validate_targets(request.targets)
        validate_foods(request.foods)
        if request.already_consumed is not None:
            validate_already_consumed(request.already_consumed)

        pool = build_unit_pool(
            request.foods,
            horizon,
            [nutrient.key for nutrient in nutrients],
            allow_shopping=request.allow_shopping,
            virtual_units_per_food=self.settings.virtual_units_per_food,
        )
        if pool.empty:
            _logger.warning(
                "Planning infeasible: no units (foods=%s, shopping=%s)",
                len(request.foods),
                request.allow_shopping,
            )
            return infeasible_result(
                horizon, "No servings on hand and nothing available to buy"
            )

        evaluator = FitnessEvaluator(
            pool=pool,
            nutrient_model=NutrientPenaltyModel(
                nutrients=nutrients,
                targets=request.targets,
                scale=self.settings.penalty_scale_factor,
            ),
            waste_model=WasteRiskModel(
                horizon_days=horizon.days,
                waste_penalty=self.settings.waste_penalty,
                at_risk_fraction=self.settings.at_risk_fraction,
                unused_purchase_fraction=self.settings.unused_purchase_fraction,
            ),
            limit_violation_penalty=self.settings.limit_violation_penalty,
            already_consumed=request.already_consumed,
        )
        params = SearchParameters.from_settings(
            self.settings, budget=request.budget, seed=request.seed
        )
        _logger.info(
            "Planning started: days=%s foods=%s units=%s generations=%s "
            "wall_clock_seconds=%s",
            horizon.days,
            len(request.foods),
            len(pool),
            params.generations,
            params.wall_clock_seconds,
        )
        outcome = GeneticOptimizer(
            evaluator, params, on_progress=on_progress, should_stop=should_stop
        ).run()
        return PlanAssembler(evaluator).assemble(
            outcome.allocation, generations=outcome.generations
        )

    async def stream(
        self, request: PlanRequest
    ) -> AsyncIterator[ProgressEvent | PlanResult]:
        """Plan on a worker thread, yielding progress events then the result.

        Closing the iterator early asks the search to stop after its current
        generation.
        """
        loop = asyncio.get_running_loop()
        events: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        stop = threading.Event()

        def publish(event: ProgressEvent) -> None:
            loop.call_soon_threadsafe(events.put_nowait, event)

        worker = asyncio.ensure_future(
            asyncio.to_thread(self.plan, request, publish, stop.is_set)
        )
        getter: asyncio.Future[ProgressEvent] | None = None
        collected = False
        try:
            while not worker.done():
                getter = asyncio.ensure_future(events.get())
                done, _ = await asyncio.wait(
                    {getter, worker}, return_when=asyncio.FIRST_COMPLETED
                )
                if getter in done:
                    event = getter.result()
                    getter = None
                    yield event
                else:
                    getter.cancel()
                    getter = None
            while not events.empty():
                yield events.get_nowait()
            collected = True
            yield worker.result()
        finally:
            stop.set()
            if getter is not None:
                getter.cancel()
            if not collected:
                if worker.done():
                    _log_abandoned(worker)
                else:
                    worker.add_done_callback(_log_abandoned)

    def _tracked_nutrients(
        self, targets: Mapping[str, TargetRange]
    ) -> tuple[NutrientDefinition, ...]:
        keys = [*parse_tracked_nutrients(self.settings.tracked_nutrients), *targets]
        return resolve_nutrients(keys)


def _log_abandoned(worker: asyncio.Future[PlanResult]) -> None:
    if worker.cancelled():
        return
    exc = worker.exception()
    if exc is not None:
        _logger.warning("Abandoned planning run failed: %s", exc)
    else:
        _logger.info(
            "Abandoned planning run stopped: score=%.2f", worker.result().score
        )


def resolve_horizon(request: PlanRequest, today: date | None = None) -> PlanHorizon:
    """Resolve the plan window from a day count or an inclusive date range."""
    start = request.start_date or today or date.today()
    days = request.horizon_days
    if request.end_date is not None:
        span = (request.end_date - start).days + 1
        if span <= 0:
            raise InvalidHorizonError("End date is before start date")
        if days is not None and days != span:
            raise InvalidHorizonError("Horizon days do not match the date range")
        days = span
    if days is None:
        raise InvalidHorizonError("Horizon days or an end date is required")
    if days <= 0:
        raise InvalidHorizonError(f"Horizon must be at least one day, got {days}")
    return PlanHorizon(start_date=start, days=days)


def validate_targets(targets: Mapping[str, TargetRange]) -> None:
    """Reject target ranges that are unknown or malformed."""
    for key, target in targets.items():
        get_nutrient(key)
        if not math.isfinite(target.minimum) or target.minimum < 0:
            raise InvalidInventoryError(f"Target minimum for {key} must be >= 0")
        if math.isnan(target.maximum) or target.maximum < target.minimum:
            raise InvalidInventoryError(f"Target maximum for {key} is below minimum")


def validate_foods(foods: tuple[FoodDefinition, ...]) -> None:
    """Reject food snapshots the planner cannot schedule consistently."""
    seen: set[str] = set()
    for food in foods:
        if not food.name:
            raise InvalidInventoryError("Food name cannot be empty")
        if food.name in seen:
            raise InvalidInventoryError(f"Duplicate food name: {food.name}")
        seen.add(food.name)
        if food.servings_on_hand < 0:
            raise InvalidInventoryError(f"Servings on hand for {food.name} is negative")
        if food.servings_per_package < 1:
            raise InvalidInventoryError(
                f"Servings per package for {food.name} must be >= 1"
            )
        if food.max_per_day is not None and food.max_per_day < 1:
            raise InvalidInventoryError(f"Max per day for {food.name} must be >= 1")
        for key, amount in food.nutrients.items():
            get_nutrient(key)
            if not math.isfinite(amount) or amount < 0:
                raise InvalidInventoryError(
                    f"Nutrient {key} of {food.name} must be a non-negative number"
                )


def validate_already_consumed(consumed: AlreadyConsumed) -> None:
    """Reject food eaten earlier that the registry or caps cannot account for."""
    for key, amount in consumed.nutrients.items():
        get_nutrient(key)
        if not math.isfinite(amount) or amount < 0:
            raise InvalidInventoryError(
                f"Already consumed {key} must be a non-negative number"
            )
    for name, count in consumed.item_counts.items():
        if count < 0:
            raise InvalidInventoryError(
                f"Already consumed count for {name} must be >= 0"
            )
