"""Shared test fixtures."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date

import pytest

from pantry_planner.config import Settings
from pantry_planner.containers import AppContainer, build_container
from pantry_planner.domain.foods import AlreadyConsumed, FoodDefinition, TargetRange
from pantry_planner.domain.planning import PlanHorizon, PlanRequest, ProgressEvent
from pantry_planner.nutrients import resolve_nutrients
from pantry_planner.services.fitness import FitnessEvaluator
from pantry_planner.services.optimizer import GeneticOptimizer, SearchParameters
from pantry_planner.services.penalties import NutrientPenaltyModel, WasteRiskModel
from pantry_planner.services.planning import PlanningService
from pantry_planner.services.unit_pool import build_unit_pool

START = date(2025, 3, 3)


def make_food(name: str, calories: float = 100.0, **kwargs: object) -> FoodDefinition:
    """Build a food with a calorie count unless nutrients are given."""
    nutrients = kwargs.pop("nutrients", {"calories": calories})
    return FoodDefinition(name=name, nutrients=nutrients, **kwargs)


def make_request(
    foods: Sequence[FoodDefinition],
    targets: Mapping[str, TargetRange],
    horizon_days: int,
    **kwargs: object,
) -> PlanRequest:
    kwargs.setdefault("start_date", START)
    kwargs.setdefault("seed", 11)
    return PlanRequest(
        foods=tuple(foods),
        targets=dict(targets),
        horizon_days=horizon_days,
        **kwargs,
    )


def build_evaluator(
    foods: Sequence[FoodDefinition],
    targets: Mapping[str, TargetRange],
    horizon_days: int,
    *,
    nutrient_keys: Sequence[str] = ("calories", "protein"),
    allow_shopping: bool = False,
    already_consumed: AlreadyConsumed | None = None,
    virtual_units_per_food: int = 12,
) -> FitnessEvaluator:
    """Wire a pool, penalty models and evaluator with default constants."""
    horizon = PlanHorizon(start_date=START, days=horizon_days)
    pool = build_unit_pool(
        foods,
        horizon,
        nutrient_keys,
        allow_shopping=allow_shopping,
        virtual_units_per_food=virtual_units_per_food,
    )
    return FitnessEvaluator(
        pool=pool,
        nutrient_model=NutrientPenaltyModel(
            nutrients=resolve_nutrients(nutrient_keys), targets=targets
        ),
        waste_model=WasteRiskModel(horizon_days=horizon_days),
        already_consumed=already_consumed,
    )


def build_optimizer(
    evaluator: FitnessEvaluator, **overrides: object
) -> GeneticOptimizer:
    params = {"population_size": 16, "generations": 20, "seed": 5, **overrides}
    return GeneticOptimizer(evaluator, SearchParameters(**params))


@dataclass
class RecordingListener:
    """Progress listener that keeps every event."""

    events: list[ProgressEvent] = field(default_factory=list)

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        population_size=20,
        generations=30,
        virtual_units_per_food=20,
        random_seed=7,
        tracked_nutrients=None,
    )


@pytest.fixture
def planning_service(settings: Settings) -> PlanningService:
    return PlanningService(settings)


@pytest.fixture
def container(settings: Settings) -> AppContainer:
    return build_container(settings)


@pytest.fixture
def mixed_evaluator() -> FitnessEvaluator:
    """Evaluator over foods exercising expiry, caps, purchases and packages."""
    foods = [
        make_food(
            "Yogurt",
            nutrients={"calories": 150, "protein": 12},
            servings_on_hand=4,
            expiration=date(2025, 3, 6),
        ),
        make_food(
            "Rice",
            nutrients={"calories": 200, "protein": 4},
            servings_on_hand=6,
            max_per_day=2,
        ),
        make_food(
            "Eggs",
            nutrients={"calories": 70, "protein": 6},
            servings_on_hand=3,
            expiration=date(2025, 3, 20),
            shoppable=True,
            servings_per_package=6,
        ),
        make_food(
            "Spinach",
            nutrients={"calories": 20, "protein": 3},
            expiration=date(2025, 3, 5),
            shoppable=True,
            servings_per_package=4,
        ),
        make_food("Old bread", calories=120, servings_on_hand=2, expiration=START),
    ]
    targets = {
        "calories": TargetRange(1800, 2200),
        "protein": TargetRange(minimum=60),
    }
    return build_evaluator(foods, targets, 5, allow_shopping=True)
