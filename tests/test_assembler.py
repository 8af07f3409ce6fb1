"""Tests for plan assembly."""

import numpy as np
import pytest

from pantry_planner.domain.foods import TargetRange
from pantry_planner.domain.planning import UNASSIGNED, PlanHorizon
from pantry_planner.services.assembler import (
    PlanAssembler,
    distribute_meals,
    infeasible_result,
)
from tests.conftest import START, build_evaluator, make_food


def _random_allocation(evaluator, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    max_days = evaluator.pool.max_days
    days = rng.integers(-1, max_days + 1)
    return np.where(max_days >= 0, days, UNASSIGNED).astype(np.int64)


def test_schedule_lists_food_names_per_day() -> None:
    evaluator = build_evaluator(
        [
            make_food("Oats", calories=300, servings_on_hand=2),
            make_food("Tea", calories=0, servings_on_hand=1),
        ],
        {"calories": TargetRange(300, 600)},
        2,
    )

    result = PlanAssembler(evaluator).assemble(np.array([0, 1, 0]), generations=4)

    assert result.feasible
    assert result.daily_schedule == [["Oats", "Tea"], ["Oats"]]
    assert result.consumption_counts() == {"Oats": 2, "Tea": 1}
    assert result.generations == 4
    assert result.score == pytest.approx(0.0)
    assert result.daily_totals[0]["calories"] == 300.0
    assert result.average_totals["calories"] == 300.0
    assert result.meals[0] == {
        "Breakfast": ["Oats"],
        "Lunch": ["Tea"],
        "Dinner": [],
        "Snack": [],
    }


def test_shopping_list_rounds_up_to_whole_packages() -> None:
    evaluator = build_evaluator(
        [make_food("Eggs", calories=70, shoppable=True, servings_per_package=6)],
        {},
        3,
        allow_shopping=True,
    )
    allocation = evaluator.empty_allocation()
    allocation[:7] = [0, 0, 1, 1, 2, 2, 2]

    result = PlanAssembler(evaluator).assemble(allocation)

    [item] = result.shopping_list
    assert item.food_name == "Eggs"
    assert item.packages_to_buy == 2
    assert item.total_servings == 12
    assert item.total_servings >= result.consumption["Eggs"].virtual
    assert result.consumption["Eggs"].on_hand == 0


def test_waste_report_never_counts_scheduled_servings(mixed_evaluator) -> None:
    assembler = PlanAssembler(mixed_evaluator)
    pool = mixed_evaluator.pool

    for seed in range(25):
        result = assembler.assemble(_random_allocation(mixed_evaluator, seed))
        wasted: dict[str, int] = {}
        for entry in [*result.waste_report.definite, *result.waste_report.at_risk]:
            wasted[entry.food_name] = wasted.get(entry.food_name, 0) + entry.count
        for index, food in enumerate(pool.foods):
            tally = result.consumption.get(food.name)
            eaten = tally.on_hand if tally else 0
            assert eaten <= food.servings_on_hand
            assert wasted.get(food.name, 0) <= food.servings_on_hand - eaten
            assert wasted.get(food.name, 0) >= 0
            assert int(pool.on_hand_counts[index]) == food.servings_on_hand


def test_shopping_list_only_holds_shoppable_foods(mixed_evaluator) -> None:
    assembler = PlanAssembler(mixed_evaluator)
    shoppable = {food.name for food in mixed_evaluator.pool.foods if food.shoppable}

    for seed in range(25):
        result = assembler.assemble(_random_allocation(mixed_evaluator, seed))
        for item in result.shopping_list:
            assert item.food_name in shoppable
            assert item.total_servings >= result.consumption[item.food_name].virtual


def test_expired_food_is_reported_as_definite_waste(mixed_evaluator) -> None:
    result = PlanAssembler(mixed_evaluator).assemble(
        mixed_evaluator.empty_allocation()
    )

    definite = {entry.food_name: entry.count for entry in result.waste_report.definite}
    at_risk = {entry.food_name: entry.count for entry in result.waste_report.at_risk}
    assert definite == {"Yogurt": 4, "Old bread": 2}
    assert at_risk == {"Eggs": 3}
    assert result.shopping_list == []
    assert result.consumption == {}


def test_distribute_meals_round_robin() -> None:
    meals = distribute_meals(["a", "b", "c", "d", "e", "f"])

    assert meals == {
        "Breakfast": ["a", "e"],
        "Lunch": ["b", "f"],
        "Dinner": ["c"],
        "Snack": ["d"],
    }


def test_infeasible_result_keeps_horizon_shape() -> None:
    result = infeasible_result(PlanHorizon(start_date=START, days=3), "nothing")

    assert not result.feasible
    assert result.daily_schedule == [[], [], []]
    assert result.shopping_list == []
    assert result.waste_report.empty
    assert result.failure_reason == "nothing"
