"""Fitness evaluation for allocations of units to days."""

from dataclasses import dataclass, field

import numpy as np

from pantry_planner.domain.foods import AlreadyConsumed
from pantry_planner.domain.planning import UNASSIGNED
from pantry_planner.services.penalties import NutrientPenaltyModel, WasteRiskModel
from pantry_planner.services.unit_pool import UnitPool


@dataclass(frozen=True)
class ScoreBreakdown:
    """Components of an allocation's fitness score."""

    nutrient: float
    limit: float
    waste: float

    @property
    def total(self) -> float:
        return self.nutrient + self.limit + self.waste


@dataclass
class FitnessEvaluator:
    """Scores allocations; lower is better and 0 is a perfect schedule.

    The score sums the nutrient penalty of every day, a penalty per serving
    over a food's per-day cap, and the waste and unused-purchase penalties.
    Food already eaten on the first day is a fixed baseline on day 0.
    """

    pool: UnitPool
    nutrient_model: NutrientPenaltyModel
    waste_model: WasteRiskModel
    limit_violation_penalty: float = 8000.0
    already_consumed: AlreadyConsumed | None = None
    _baseline_totals: np.ndarray = field(init=False, repr=False)
    _baseline_counts: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.nutrient_model.keys != self.pool.nutrient_keys:
            raise ValueError("Nutrient model and unit pool track different nutrients")
        days = self.pool.horizon.days
        self._baseline_totals = np.zeros((days, len(self.pool.nutrient_keys)))
        self._baseline_counts = np.zeros((days, self.pool.food_count), dtype=np.int64)
        if self.already_consumed is None or days == 0:
            return
        self._baseline_totals[0] = self.nutrient_model.vector(
            self.already_consumed.nutrients
        )
        for name, count in self.already_consumed.item_counts.items():
            food_index = self.pool.food_index(name)
            if food_index is not None:
                self._baseline_counts[0, food_index] += count

    @property
    def days(self) -> int:
        return self.pool.horizon.days

    def empty_allocation(self) -> np.ndarray:
        """Return an allocation with every unit unassigned."""
        return np.full(len(self.pool), UNASSIGNED, dtype=np.int64)

    def daily_totals(self, allocation: np.ndarray) -> np.ndarray:
        """Return nutrient totals per day, shape (days, nutrients)."""
        # The extra last row collects unassigned units (index -1).
        totals = np.zeros((self.days + 1, len(self.pool.nutrient_keys)))
        np.add.at(totals, allocation, self.pool.nutrient_matrix)
        return totals[: self.days] + self._baseline_totals

    def daily_counts(self, allocation: np.ndarray) -> np.ndarray:
        """Return servings of each food per day, shape (days, foods)."""
        foods = self.pool.food_count
        flat = (allocation + 1) * foods + self.pool.food_indices
        counts = np.bincount(flat, minlength=(self.days + 1) * foods)
        return counts.reshape(self.days + 1, foods)[1:] + self._baseline_counts

    def usage(self, allocation: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Return scheduled on-hand and virtual servings per food."""
        assigned = allocation != UNASSIGNED
        on_hand = self.pool.on_hand_mask
        consumed = np.bincount(
            self.pool.food_indices[assigned & on_hand], minlength=self.pool.food_count
        )
        virtual_used = np.bincount(
            self.pool.food_indices[assigned & ~on_hand], minlength=self.pool.food_count
        )
        return consumed, virtual_used

    def food_waste(self, food_index: int, consumed: int) -> float:
        """Return the waste penalty of one food at a consumption count."""
        return self.waste_model.penalty(
            int(self.pool.on_hand_counts[food_index]),
            int(consumed),
            float(self.pool.days_until_expiry[food_index]),
        )

    def food_purchase(self, food_index: int, virtual_used: int) -> float:
        """Return the unused-purchase penalty of one food."""
        return self.waste_model.purchase_penalty(
            int(virtual_used), int(self.pool.servings_per_package[food_index])
        )

    def limit_penalty(self, counts: np.ndarray) -> float:
        """Return the cap violation penalty for per-day food counts."""
        excess = np.maximum(counts - self.pool.caps, 0.0)
        return float(excess.sum()) * self.limit_violation_penalty

    def limit_delta(self, food_index: int, count: int, step: int) -> float:
        """Return the cap penalty change of adding `step` servings to a day."""
        cap = float(self.pool.caps[food_index])
        before = max(0.0, count - cap)
        after = max(0.0, count + step - cap)
        return (after - before) * self.limit_violation_penalty

    def breakdown(self, allocation: np.ndarray) -> ScoreBreakdown:
        """Return the score components of an allocation."""
        allocation = np.asarray(allocation, dtype=np.int64)
        totals = self.daily_totals(allocation)
        nutrient = float(self.nutrient_model.penalties(totals).sum())
        limit = self.limit_penalty(self.daily_counts(allocation))
        consumed, virtual_used = self.usage(allocation)
        waste = sum(
            self.food_waste(index, consumed[index])
            + self.food_purchase(index, virtual_used[index])
            for index in range(self.pool.food_count)
        )
        return ScoreBreakdown(nutrient=nutrient, limit=limit, waste=float(waste))

    def score(self, allocation: np.ndarray) -> float:
        """Return the fitness score of an allocation."""
        return self.breakdown(allocation).total

    def state(self, allocation: np.ndarray) -> "EvaluationState":
        """Return an incremental evaluation state for an allocation."""
        return EvaluationState(self, allocation)

    def incremental_delta(
        self, allocation: np.ndarray, unit: int, from_day: int, to_day: int
    ) -> float:
        """Return the score change of moving one unit between days."""
        if int(allocation[unit]) != from_day:
            raise ValueError(f"Unit {unit} is not assigned to day {from_day}")
        return self.state(allocation).delta(unit, to_day)


class EvaluationState:
    """Cached per-day aggregates of one allocation for incremental moves.

    A move touches at most two days, one food's cap counts and, when the
    unit changes between scheduled and unassigned, one food's waste or
    purchase penalty. `delta` computes exactly that difference.
    """

    def __init__(self, evaluator: FitnessEvaluator, allocation: np.ndarray) -> None:
        self.evaluator = evaluator
        self.allocation = np.array(allocation, dtype=np.int64, copy=True)
        self.totals = evaluator.daily_totals(self.allocation)
        self.counts = evaluator.daily_counts(self.allocation)
        self.consumed, self.virtual_used = evaluator.usage(self.allocation)
        self.day_penalties = evaluator.nutrient_model.penalties(self.totals)
        self.score = evaluator.score(self.allocation)
        self.version = 0

    def delta(self, unit: int, to_day: int) -> float:
        """Return the score change of moving `unit` to `to_day`."""
        from_day = int(self.allocation[unit])
        if from_day == to_day:
            return 0.0
        evaluator = self.evaluator
        model = evaluator.nutrient_model
        nutrients = evaluator.pool.nutrient_matrix[unit]
        food = int(evaluator.pool.food_indices[unit])
        delta = 0.0
        if from_day != UNASSIGNED:
            delta += model.day_penalty(self.totals[from_day] - nutrients)
            delta -= self.day_penalties[from_day]
            delta += evaluator.limit_delta(food, int(self.counts[from_day, food]), -1)
        if to_day != UNASSIGNED:
            delta += model.day_penalty(self.totals[to_day] + nutrients)
            delta -= self.day_penalties[to_day]
            delta += evaluator.limit_delta(food, int(self.counts[to_day, food]), 1)
        if (from_day == UNASSIGNED) != (to_day == UNASSIGNED):
            step = 1 if from_day == UNASSIGNED else -1
            if evaluator.pool.on_hand_mask[unit]:
                consumed = int(self.consumed[food])
                delta += evaluator.food_waste(food, consumed + step)
                delta -= evaluator.food_waste(food, consumed)
            else:
                used = int(self.virtual_used[food])
                delta += evaluator.food_purchase(food, used + step)
                delta -= evaluator.food_purchase(food, used)
        return float(delta)

    def apply(self, unit: int, to_day: int) -> float:
        """Move `unit` to `to_day` and return the score change."""
        from_day = int(self.allocation[unit])
        if from_day == to_day:
            return 0.0
        delta = self.delta(unit, to_day)
        evaluator = self.evaluator
        nutrients = evaluator.pool.nutrient_matrix[unit]
        food = int(evaluator.pool.food_indices[unit])
        model = evaluator.nutrient_model
        if from_day != UNASSIGNED:
            self.totals[from_day] -= nutrients
            self.counts[from_day, food] -= 1
            self.day_penalties[from_day] = model.day_penalty(self.totals[from_day])
        if to_day != UNASSIGNED:
            self.totals[to_day] += nutrients
            self.counts[to_day, food] += 1
            self.day_penalties[to_day] = model.day_penalty(self.totals[to_day])
        if (from_day == UNASSIGNED) != (to_day == UNASSIGNED):
            step = 1 if from_day == UNASSIGNED else -1
            if evaluator.pool.on_hand_mask[unit]:
                self.consumed[food] += step
            else:
                self.virtual_used[food] += step
        self.allocation[unit] = to_day
        self.score += delta
        self.version += 1
        return delta
