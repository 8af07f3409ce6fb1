"""Domain models for the food inventory snapshot."""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class FoodDefinition:
    """A food in the inventory snapshot, with nutrients per serving."""

    name: str
    nutrients: Mapping[str, float]
    servings_on_hand: int = 0
    expiration: date | None = None
    max_per_day: int | None = None
    shoppable: bool = False
    servings_per_package: int = 1


@dataclass(frozen=True)
class TargetRange:
    """Daily target range for one nutrient."""

    minimum: float = 0.0
    maximum: float = math.inf

    @property
    def bounded(self) -> bool:
        return math.isfinite(self.maximum)


@dataclass(frozen=True)
class AlreadyConsumed:
    """Food already eaten on the first day of the plan."""

    nutrients: Mapping[str, float] = field(default_factory=dict)
    item_counts: Mapping[str, int] = field(default_factory=dict)
