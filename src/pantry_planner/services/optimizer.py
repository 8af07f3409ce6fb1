"""Genetic search over allocations of units to days."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from pantry_planner.domain.planning import (
    UNASSIGNED,
    ProgressEvent,
    SearchBudget,
    UnitOrigin,
)
from pantry_planner.services.fitness import EvaluationState, FitnessEvaluator

if TYPE_CHECKING:
    from pantry_planner.config import Settings

_IMPROVEMENT_TOLERANCE = 1e-6
# units between budget checks in the greedy seed and polish loops
_CHECK_INTERVAL = 32

_logger = logging.getLogger(__name__)


class ProgressListener(Protocol):
    """Receives progress events from a running search."""

    def __call__(self, event: ProgressEvent) -> None:
        """Handle a progress event without blocking the search."""


@dataclass(frozen=True)
class SearchParameters:
    """Hyper-parameters and budget of one genetic search."""

    population_size: int = 60
    generations: int | None = 150
    wall_clock_seconds: float | None = None
    mutation_start: float = 0.05
    mutation_end: float = 0.005
    tournament_size: int = 3
    initial_assignment_probability: float = 0.02
    progress_interval: int = 10
    polish: bool = True
    max_polish_passes: int = 50
    seed: int | None = None

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        budget: SearchBudget | None = None,
        seed: int | None = None,
    ) -> "SearchParameters":
        """Build parameters from settings, letting a request budget override."""
        generations: int | None = settings.generations
        wall_clock_seconds: float | None = None
        if budget is not None and budget.wall_clock_seconds is not None:
            generations = None
            wall_clock_seconds = budget.wall_clock_seconds
        elif budget is not None and budget.generations is not None:
            generations = budget.generations
        return cls(
            population_size=settings.population_size,
            generations=generations,
            wall_clock_seconds=wall_clock_seconds,
            mutation_start=settings.mutation_start,
            mutation_end=settings.mutation_end,
            tournament_size=settings.tournament_size,
            initial_assignment_probability=settings.initial_assignment_probability,
            progress_interval=settings.progress_interval,
            polish=settings.polish,
            max_polish_passes=settings.max_polish_passes,
            seed=seed if seed is not None else settings.random_seed,
        )

    @property
    def budget_ms(self) -> float | None:
        if self.wall_clock_seconds is None:
            return None
        return self.wall_clock_seconds * 1000.0


@dataclass(frozen=True)
class SearchOutcome:
    """Best allocation found by a search run."""

    allocation: np.ndarray
    score: float
    generations: int
    elapsed_ms: float


@dataclass
class _Individual:
    allocation: np.ndarray
    fitness: float


class GeneticOptimizer:
    """Evolves a population of allocations toward lower fitness scores.

    The population starts from one greedy allocation plus sparse random
    ones. Each generation keeps the best individual unchanged and fills the
    rest with tournament-selected parents recombined by single-point
    crossover, mutated with a linearly decaying per-gene rate and repaired
    into each unit's valid day range. The winner is optionally polished by a
    first-improvement descent. All state belongs to one instance and one run.
    """

    def __init__(
        self,
        evaluator: FitnessEvaluator,
        params: SearchParameters,
        on_progress: ProgressListener | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> None:
        self.evaluator = evaluator
        self.pool = evaluator.pool
        self.params = params
        self.on_progress = on_progress
        self.should_stop = should_stop
        self.rng = np.random.default_rng(params.seed)
        self._max_days = self.pool.max_days
        self._started_at = time.perf_counter()

    def run(self) -> SearchOutcome:
        """Run the search until its budget is spent and return the best."""
        self._started_at = time.perf_counter()
        if self.pool.empty:
            allocation = self.evaluator.empty_allocation()
            return SearchOutcome(
                allocation=allocation,
                score=self.evaluator.score(allocation),
                generations=0,
                elapsed_ms=0.0,
            )

        population = self.initial_population()
        population.sort(key=lambda individual: individual.fitness)
        initial_best = population[0].fitness
        generation = 0
        while True:
            population.sort(key=lambda individual: individual.fitness)
            finished = self._finished(generation)
            if generation % max(self.params.progress_interval, 1) == 0 or finished:
                self._emit(generation, population[0].fitness, initial_best)
            if finished:
                break
            population = self.next_generation(population, self._progress(generation))
            generation += 1

        best = population[0]
        allocation = best.allocation
        score = best.fitness
        if self.params.polish and not self._interrupted():
            allocation, score = self.polish(allocation)
        elapsed_ms = self._elapsed_ms()
        _logger.info(
            "Search finished: units=%s generations=%s initial=%.2f best=%.2f "
            "elapsed_ms=%.0f",
            len(self.pool),
            generation,
            initial_best,
            score,
            elapsed_ms,
        )
        return SearchOutcome(
            allocation=allocation,
            score=score,
            generations=generation,
            elapsed_ms=elapsed_ms,
        )

    def initial_population(self) -> list[_Individual]:
        """Return one greedy individual followed by sparse random ones."""
        size = max(self.params.population_size, 1)
        allocations = [self.greedy_allocation()]
        while len(allocations) < size:
            allocations.append(self.sparse_random_allocation())
        return [
            _Individual(allocation, self.evaluator.score(allocation))
            for allocation in allocations
        ]

    def sparse_random_allocation(self) -> np.ndarray:
        """Assign each unit to a random valid day with a small probability."""
        size = len(self.pool)
        chosen = self.rng.random(size) < self.params.initial_assignment_probability
        chosen &= self._max_days >= 0
        days = np.floor(self.rng.random(size) * (self._max_days + 1)).astype(np.int64)
        return np.where(chosen, days, UNASSIGNED).astype(np.int64)

    def greedy_allocation(self) -> np.ndarray:
        """Place units soonest-expiring first on their cheapest valid day.

        On-hand servings go first, then purchasable ones. A unit is placed
        only when the best move lowers the score. Units of the same food and
        origin are interchangeable, so once one is rejected the rest of its
        group is skipped. Placement stops when the run budget runs out.
        """
        state = self.evaluator.state(self.evaluator.empty_allocation())
        expiry = self.pool.days_until_expiry
        order = sorted(
            range(len(self.pool)),
            key=lambda unit: (
                not self.pool.on_hand_mask[unit],
                expiry[self.pool.food_indices[unit]],
                unit,
            ),
        )
        rejected: set[tuple[int, bool]] = set()
        for position, unit in enumerate(order):
            if position % _CHECK_INTERVAL == 0 and self._interrupted():
                break
            group = (
                int(self.pool.food_indices[unit]),
                bool(self.pool.on_hand_mask[unit]),
            )
            max_day = int(self._max_days[unit])
            if max_day < 0 or group in rejected:
                continue
            deltas = [state.delta(unit, day) for day in range(max_day + 1)]
            best_day = int(np.argmin(deltas))
            if deltas[best_day] < -_IMPROVEMENT_TOLERANCE:
                state.apply(unit, best_day)
            else:
                rejected.add(group)
        return state.allocation.copy()

    def next_generation(
        self, population: list[_Individual], progress: float
    ) -> list[_Individual]:
        """Breed the next generation from a population sorted best first."""
        rate = self.mutation_rate(progress)
        offspring = [population[0]]
        while len(offspring) < len(population):
            first = self.select(population)
            second = self.select(population)
            for child in self.crossover(first.allocation, second.allocation):
                if len(offspring) >= len(population):
                    break
                child = self.mutate(child, rate)
                offspring.append(_Individual(child, self.evaluator.score(child)))
        return offspring

    def select(self, population: list[_Individual]) -> _Individual:
        """Return the fittest of a random tournament."""
        size = max(self.params.tournament_size, 1)
        picks = self.rng.integers(len(population), size=size)
        return min((population[index] for index in picks), key=lambda i: i.fitness)

    def crossover(
        self, first: np.ndarray, second: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        """Return two repaired children of a single-point crossover."""
        point = int(self.rng.integers(len(first))) if len(first) else 0
        child_a = np.concatenate((first[:point], second[point:]))
        child_b = np.concatenate((second[:point], first[point:]))
        return self.repair(child_a), self.repair(child_b)

    def mutate(self, allocation: np.ndarray, rate: float) -> np.ndarray:
        """Reassign each gene with probability `rate` to a valid day or none."""
        mutated = allocation.copy()
        size = len(mutated)
        chosen = (self.rng.random(size) < rate) & (self._max_days >= 0)
        if chosen.any():
            choices = self._max_days[chosen] + 2
            draws = np.floor(self.rng.random(int(chosen.sum())) * choices)
            mutated[chosen] = draws.astype(np.int64) - 1
        return self.repair(mutated)

    def repair(self, allocation: np.ndarray) -> np.ndarray:
        """Clamp days beyond each unit's valid range down to its last day."""
        clamped = np.minimum(allocation, self._max_days)
        return np.maximum(clamped, UNASSIGNED).astype(np.int64)

    def mutation_rate(self, progress: float) -> float:
        """Return the per-gene mutation rate at a fraction of the run."""
        progress = min(max(progress, 0.0), 1.0)
        start, end = self.params.mutation_start, self.params.mutation_end
        return start - (start - end) * progress

    def polish(self, allocation: np.ndarray) -> tuple[np.ndarray, float]:
        """Apply first-improving single-unit moves until none is left.

        Stops early, keeping the moves made so far, once the run budget is
        spent or a stop is requested.
        """
        state = self.evaluator.state(allocation)
        for _ in range(max(self.params.max_polish_passes, 0)):
            if self._interrupted() or not self._polish_pass(state):
                break
        if not self._interrupted():
            self._settle_origins(state)
        final = state.allocation.copy()
        return final, self.evaluator.score(final)

    def _polish_pass(self, state: EvaluationState) -> bool:
        improved = False
        # (food, on_hand, day) -> state version at which no move helped
        stale: dict[tuple[int, bool, int], int] = {}
        for unit in range(len(self.pool)):
            if unit % _CHECK_INTERVAL == 0 and self._interrupted():
                break
            max_day = int(self._max_days[unit])
            if max_day < 0:
                continue
            current = int(state.allocation[unit])
            key = (
                int(self.pool.food_indices[unit]),
                bool(self.pool.on_hand_mask[unit]),
                current,
            )
            if stale.get(key) == state.version:
                continue
            for day in (UNASSIGNED, *range(max_day + 1)):
                if day == current:
                    continue
                if state.delta(unit, day) < -_IMPROVEMENT_TOLERANCE:
                    state.apply(unit, day)
                    improved = True
                    break
            else:
                stale[key] = state.version
        return improved

    def _settle_origins(self, state: EvaluationState) -> None:
        """Prefer unassigned on-hand servings over bought ones of the same food."""
        for food_index in range(self.pool.food_count):
            on_hand = self.pool.units_of(food_index, UnitOrigin.ON_HAND)
            virtual = self.pool.units_of(food_index, UnitOrigin.VIRTUAL)
            idle = [u for u in on_hand if state.allocation[u] == UNASSIGNED]
            bought = [u for u in virtual if state.allocation[u] != UNASSIGNED]
            for idle_unit, bought_unit in zip(idle, bought, strict=False):
                day = int(state.allocation[bought_unit])
                if day > self._max_days[idle_unit]:
                    continue
                swap = state.apply(idle_unit, day)
                swap += state.apply(bought_unit, UNASSIGNED)
                if swap > _IMPROVEMENT_TOLERANCE:
                    state.apply(bought_unit, day)
                    state.apply(idle_unit, UNASSIGNED)

    def _progress(self, generation: int) -> float:
        if self.params.wall_clock_seconds:
            return self._elapsed_ms() / (self.params.wall_clock_seconds * 1000.0)
        if self.params.generations:
            return generation / self.params.generations
        return 1.0

    def _interrupted(self) -> bool:
        """Return whether a stop was requested or the wall clock ran out."""
        if self.should_stop is not None and self.should_stop():
            return True
        budget_ms = self.params.budget_ms
        return budget_ms is not None and self._elapsed_ms() >= budget_ms

    def _finished(self, generation: int) -> bool:
        if self._interrupted():
            return True
        if self.params.wall_clock_seconds is not None:
            return False
        return generation >= (self.params.generations or 0)

    def _emit(self, generation: int, best: float, initial_best: float) -> None:
        normalized = best / initial_best if initial_best > 0 else 0.0
        event = ProgressEvent(
            generation=generation,
            best_score=best,
            best_score_normalized=normalized,
            elapsed_ms=self._elapsed_ms(),
            budget_ms=self.params.budget_ms,
        )
        _logger.debug("Search progress: generation=%s best=%.2f", generation, best)
        if self.on_progress is not None:
            self.on_progress(event)

    def _elapsed_ms(self) -> float:
        return (time.perf_counter() - self._started_at) * 1000.0
