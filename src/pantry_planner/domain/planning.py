"""Domain models for planning runs and their results."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from pantry_planner.domain.foods import AlreadyConsumed, FoodDefinition, TargetRange

UNASSIGNED = -1
MEAL_NAMES = ("Breakfast", "Lunch", "Dinner", "Snack")


class UnitOrigin(Enum):
    """Where a schedulable serving comes from."""

    ON_HAND = "on-hand"
    VIRTUAL = "virtual"


@dataclass(frozen=True)
class Unit:
    """One schedulable serving."""

    index: int
    food_index: int
    food_name: str
    nutrients: Mapping[str, float]
    expiration: date | None
    max_per_day: int | None
    origin: UnitOrigin
    max_day: int

    @property
    def schedulable(self) -> bool:
        return self.max_day >= 0


@dataclass(frozen=True)
class SearchBudget:
    """Either a generation count or a wall-clock budget for one run."""

    generations: int | None = None
    wall_clock_seconds: float | None = None


@dataclass(frozen=True)
class PlanRequest:
    """A single planning request, read-only for the whole run."""

    foods: tuple[FoodDefinition, ...]
    targets: Mapping[str, TargetRange]
    horizon_days: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    allow_shopping: bool = False
    budget: SearchBudget | None = None
    already_consumed: AlreadyConsumed | None = None
    seed: int | None = None


@dataclass(frozen=True)
class PlanHorizon:
    """Resolved planning window."""

    start_date: date
    days: int

    def offset(self, day: date) -> int:
        """Return the number of days from the plan start to a date."""
        return (day - self.start_date).days


@dataclass(frozen=True)
class ProgressEvent:
    """Progress snapshot emitted while the search runs."""

    generation: int
    best_score: float
    best_score_normalized: float
    elapsed_ms: float
    budget_ms: float | None


@dataclass(frozen=True)
class ConsumptionTally:
    """Servings of one food consumed by a plan, by origin."""

    on_hand: int = 0
    virtual: int = 0

    @property
    def total(self) -> int:
        return self.on_hand + self.virtual


@dataclass(frozen=True)
class ShoppingItem:
    """Packages to buy for one shoppable food."""

    food_name: str
    packages_to_buy: int
    servings_per_package: int
    total_servings: int


@dataclass(frozen=True)
class WasteEntry:
    """Servings of one food in a waste category."""

    food_name: str
    count: int


@dataclass(frozen=True)
class WasteReport:
    """Definite and at-risk waste for on-hand food."""

    definite: list[WasteEntry] = field(default_factory=list)
    at_risk: list[WasteEntry] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.definite and not self.at_risk


@dataclass(frozen=True)
class WasteAssessment:
    """Classification of one food's on-hand servings."""

    scheduled: int
    definite: int
    at_risk: int
    covered: int


@dataclass(frozen=True)
class PlanResult:
    """Assembled plan returned to callers."""

    feasible: bool
    horizon: PlanHorizon
    daily_schedule: list[list[str]]
    consumption: dict[str, ConsumptionTally] = field(default_factory=dict)
    shopping_list: list[ShoppingItem] = field(default_factory=list)
    waste_report: WasteReport = field(default_factory=WasteReport)
    score: float = 0.0
    daily_totals: list[dict[str, float]] = field(default_factory=list)
    average_totals: dict[str, float] = field(default_factory=dict)
    meals: list[dict[str, list[str]]] = field(default_factory=list)
    generations: int = 0
    failure_reason: str | None = None

    def consumption_counts(self) -> dict[str, int]:
        """Return total servings consumed per food."""
        return {name: tally.total for name, tally in self.consumption.items()}
