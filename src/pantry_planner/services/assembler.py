"""Turn the best allocation into a day-by-day plan."""

from dataclasses import dataclass

import numpy as np

from pantry_planner.domain.planning import (
    MEAL_NAMES,
    UNASSIGNED,
    ConsumptionTally,
    PlanHorizon,
    PlanResult,
    ShoppingItem,
    WasteEntry,
    WasteReport,
)
from pantry_planner.services.fitness import FitnessEvaluator
from pantry_planner.services.penalties import packages_needed


@dataclass
class PlanAssembler:
    """Builds schedules, tallies, shopping lists and waste reports."""

    evaluator: FitnessEvaluator

    def assemble(self, allocation: np.ndarray, generations: int = 0) -> PlanResult:
        """Assemble the plan result for an allocation."""
        pool = self.evaluator.pool
        allocation = np.asarray(allocation, dtype=np.int64)
        schedule: list[list[str]] = [[] for _ in range(pool.horizon.days)]
        for unit in pool.units:
            day = int(allocation[unit.index])
            if day != UNASSIGNED:
                schedule[day].append(unit.food_name)

        consumed, virtual_used = self.evaluator.usage(allocation)
        consumption: dict[str, ConsumptionTally] = {}
        shopping_list: list[ShoppingItem] = []
        definite: list[WasteEntry] = []
        at_risk: list[WasteEntry] = []
        for index, food in enumerate(pool.foods):
            tally = ConsumptionTally(
                on_hand=int(consumed[index]), virtual=int(virtual_used[index])
            )
            if tally.total:
                consumption[food.name] = tally
            if tally.virtual and food.shoppable:
                packages = packages_needed(tally.virtual, food.servings_per_package)
                shopping_list.append(
                    ShoppingItem(
                        food_name=food.name,
                        packages_to_buy=packages,
                        servings_per_package=food.servings_per_package,
                        total_servings=packages * food.servings_per_package,
                    )
                )
            assessment = self.evaluator.waste_model.assess(
                food.servings_on_hand,
                tally.on_hand,
                float(pool.days_until_expiry[index]),
            )
            if assessment.definite:
                definite.append(WasteEntry(food.name, assessment.definite))
            if assessment.at_risk:
                at_risk.append(WasteEntry(food.name, assessment.at_risk))

        totals = self.evaluator.daily_totals(allocation)
        keys = pool.nutrient_keys
        averages = totals.mean(axis=0) if len(totals) else np.zeros(len(keys))
        return PlanResult(
            feasible=True,
            horizon=pool.horizon,
            daily_schedule=schedule,
            consumption=consumption,
            shopping_list=shopping_list,
            waste_report=WasteReport(definite=definite, at_risk=at_risk),
            score=self.evaluator.score(allocation),
            daily_totals=[dict(zip(keys, row.tolist(), strict=True)) for row in totals],
            average_totals=dict(zip(keys, averages.tolist(), strict=True)),
            meals=[distribute_meals(items) for items in schedule],
            generations=generations,
        )


def distribute_meals(items: list[str]) -> dict[str, list[str]]:
    """Spread a day's items over the meal slots in turn."""
    meals: dict[str, list[str]] = {name: [] for name in MEAL_NAMES}
    for position, item in enumerate(items):
        meals[MEAL_NAMES[position % len(MEAL_NAMES)]].append(item)
    return meals


def infeasible_result(horizon: PlanHorizon, reason: str) -> PlanResult:
    """Return the explicit failure result for a run with nothing to schedule."""
    return PlanResult(
        feasible=False,
        horizon=horizon,
        daily_schedule=[[] for _ in range(horizon.days)],
        failure_reason=reason,
    )
