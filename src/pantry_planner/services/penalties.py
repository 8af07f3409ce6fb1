"""Penalty models for nutrient targets and food waste."""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field

import numpy as np

from pantry_planner.domain.foods import TargetRange
from pantry_planner.domain.planning import WasteAssessment
from pantry_planner.nutrients import NutrientDefinition


@dataclass
class NutrientPenaltyModel:
    """Quadratic penalty for daily totals outside their target ranges.

    Deviations are normalised by the range maximum (or the minimum when the
    maximum is unbounded) so nutrients of different scale are comparable.
    A normaliser of zero falls back to 1.
    """

    nutrients: tuple[NutrientDefinition, ...]
    targets: Mapping[str, TargetRange]
    scale: float = 5000.0
    _minimums: np.ndarray = field(init=False, repr=False)
    _maximums: np.ndarray = field(init=False, repr=False)
    _normalizers: np.ndarray = field(init=False, repr=False)
    _weights: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        ranges = [self.targets.get(n.key, TargetRange()) for n in self.nutrients]
        self._minimums = np.array([r.minimum for r in ranges], dtype=float)
        self._maximums = np.array([r.maximum for r in ranges], dtype=float)
        self._normalizers = np.array([_normalizer(r) for r in ranges], dtype=float)
        self._weights = np.array([n.weight for n in self.nutrients], dtype=float)

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(n.key for n in self.nutrients)

    def vector(self, amounts: Mapping[str, float]) -> np.ndarray:
        """Return amounts as an array in tracked nutrient order."""
        return np.array([float(amounts.get(key, 0.0)) for key in self.keys])

    def penalties(self, totals: np.ndarray) -> np.ndarray:
        """Return the penalty of each row of a (days, nutrients) array."""
        below = np.maximum(self._minimums - totals, 0.0)
        above = np.maximum(totals - self._maximums, 0.0)
        normalized = (below + above) / self._normalizers
        return self.scale * (self._weights * normalized * normalized).sum(axis=-1)

    def day_penalty(self, totals: Mapping[str, float] | np.ndarray) -> float:
        """Return the penalty for a single day's totals."""
        if isinstance(totals, Mapping):
            totals = self.vector(totals)
        return float(self.penalties(np.asarray(totals, dtype=float)))


def _normalizer(target: TargetRange) -> float:
    bound = target.maximum if target.bounded else target.minimum
    return bound or 1.0


@dataclass(frozen=True)
class WasteRiskModel:
    """Penalty for on-hand food likely to be wasted.

    Unscheduled servings of food expiring inside the horizon are definite
    waste. Food expiring later is at risk when the plan's consumption rate,
    extrapolated past the horizon, would not finish it before it expires.
    The linear extrapolation is a tunable approximation.
    """

    horizon_days: int
    waste_penalty: float = 10000.0
    at_risk_fraction: float = 0.25
    unused_purchase_fraction: float = 0.05

    def assess(
        self, on_hand: int, consumed: int, days_until_expiry: float
    ) -> WasteAssessment:
        """Classify every on-hand serving of one food exactly once."""
        scheduled = min(max(consumed, 0), on_hand)
        unscheduled = on_hand - scheduled
        if unscheduled <= 0:
            return WasteAssessment(
                scheduled=scheduled, definite=0, at_risk=0, covered=0
            )
        if days_until_expiry < self.horizon_days:
            return WasteAssessment(
                scheduled=scheduled, definite=unscheduled, at_risk=0, covered=0
            )
        if math.isinf(days_until_expiry):
            return WasteAssessment(
                scheduled=scheduled, definite=0, at_risk=0, covered=unscheduled
            )
        rate = scheduled / max(self.horizon_days, 1)
        edible_after = rate * (days_until_expiry - self.horizon_days)
        projected_unused = math.ceil(round(unscheduled - edible_after, 9))
        at_risk = min(unscheduled, max(0, projected_unused))
        return WasteAssessment(
            scheduled=scheduled,
            definite=0,
            at_risk=at_risk,
            covered=unscheduled - at_risk,
        )

    def penalty(self, on_hand: int, consumed: int, days_until_expiry: float) -> float:
        """Return the waste penalty for one food."""
        assessment = self.assess(on_hand, consumed, days_until_expiry)
        return self.waste_penalty * (
            assessment.definite + self.at_risk_fraction * assessment.at_risk
        )

    def purchase_penalty(self, virtual_used: int, servings_per_package: int) -> float:
        """Return the penalty for bought servings left over in opened packages."""
        if virtual_used <= 0:
            return 0.0
        packages = packages_needed(virtual_used, servings_per_package)
        unused = packages * servings_per_package - virtual_used
        return unused * self.waste_penalty * self.unused_purchase_fraction


def packages_needed(servings: int, servings_per_package: int) -> int:
    """Return whole packages needed to cover a number of servings."""
    if servings <= 0:
        return 0
    return -(-servings // max(servings_per_package, 1))
