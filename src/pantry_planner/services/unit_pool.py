"""Expansion of an inventory snapshot into schedulable units."""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from pantry_planner.domain.foods import FoodDefinition
from pantry_planner.domain.planning import PlanHorizon, Unit, UnitOrigin

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class UnitPool:
    """Immutable set of units for one planning run.

    Array attributes are read-only views aligned with `units` (per unit) or
    with `foods` (per food) and are what the evaluator works on.
    """

    horizon: PlanHorizon
    foods: tuple[FoodDefinition, ...]
    units: tuple[Unit, ...]
    nutrient_keys: tuple[str, ...]
    nutrient_matrix: np.ndarray
    food_indices: np.ndarray
    on_hand_mask: np.ndarray
    max_days: np.ndarray
    on_hand_counts: np.ndarray
    days_until_expiry: np.ndarray
    caps: np.ndarray
    servings_per_package: np.ndarray

    def __len__(self) -> int:
        return len(self.units)

    @property
    def empty(self) -> bool:
        return not self.units

    @property
    def food_count(self) -> int:
        return len(self.foods)

    def food_index(self, name: str) -> int | None:
        """Return the index of a food by name, if present."""
        for index, food in enumerate(self.foods):
            if food.name == name:
                return index
        return None

    def units_of(self, food_index: int, origin: UnitOrigin) -> np.ndarray:
        """Return unit indices of one food and origin."""
        on_hand = origin is UnitOrigin.ON_HAND
        mask = (self.food_indices == food_index) & (self.on_hand_mask == on_hand)
        return np.flatnonzero(mask)


def max_valid_day(expiration_offset: int | None, horizon_days: int) -> int:
    """Return the last day a serving may be scheduled, or -1 if never.

    Food is eaten before its expiration date, so a serving expiring on day
    `n` of the plan can be scheduled up to day `n - 1`.
    """
    last_day = horizon_days - 1
    if expiration_offset is not None:
        last_day = min(last_day, expiration_offset - 1)
    return max(last_day, -1)


def build_unit_pool(
    foods: Sequence[FoodDefinition],
    horizon: PlanHorizon,
    nutrient_keys: Sequence[str],
    *,
    allow_shopping: bool,
    virtual_units_per_food: int = 200,
) -> UnitPool:
    """Build one unit per serving on hand plus bounded purchasable servings."""
    units: list[Unit] = []
    days_until_expiry: list[float] = []
    for food_index, food in enumerate(foods):
        expiry = None
        if food.expiration is not None:
            expiry = horizon.offset(food.expiration)
        days_until_expiry.append(math.inf if expiry is None else float(expiry))
        max_day = max_valid_day(expiry, horizon.days)
        counts = [(UnitOrigin.ON_HAND, food.servings_on_hand)]
        if allow_shopping and food.shoppable:
            virtual = _virtual_bound(food, max_day, virtual_units_per_food)
            counts.append((UnitOrigin.VIRTUAL, virtual))
        for origin, count in counts:
            for _ in range(count):
                units.append(
                    Unit(
                        index=len(units),
                        food_index=food_index,
                        food_name=food.name,
                        nutrients=food.nutrients,
                        expiration=food.expiration,
                        max_per_day=food.max_per_day,
                        origin=origin,
                        max_day=max_day,
                    )
                )

    keys = tuple(nutrient_keys)
    pool = UnitPool(
        horizon=horizon,
        foods=tuple(foods),
        units=tuple(units),
        nutrient_keys=keys,
        nutrient_matrix=_readonly(
            np.array(
                [[float(u.nutrients.get(key, 0.0)) for key in keys] for u in units],
                dtype=float,
            ).reshape(len(units), len(keys))
        ),
        food_indices=_readonly(np.array([u.food_index for u in units], dtype=np.int64)),
        on_hand_mask=_readonly(
            np.array([u.origin is UnitOrigin.ON_HAND for u in units], dtype=bool)
        ),
        max_days=_readonly(np.array([u.max_day for u in units], dtype=np.int64)),
        on_hand_counts=_readonly(
            np.array([f.servings_on_hand for f in foods], dtype=np.int64)
        ),
        days_until_expiry=_readonly(np.array(days_until_expiry, dtype=float)),
        caps=_readonly(
            np.array(
                [math.inf if f.max_per_day is None else f.max_per_day for f in foods],
                dtype=float,
            )
        ),
        servings_per_package=_readonly(
            np.array([f.servings_per_package for f in foods], dtype=np.int64)
        ),
    )
    _logger.debug(
        "Unit pool built: foods=%s units=%s on_hand=%s",
        len(foods),
        len(pool),
        int(pool.on_hand_mask.sum()),
    )
    return pool


def _virtual_bound(food: FoodDefinition, max_day: int, limit: int) -> int:
    """Cap purchasable servings at what the per-day limit could ever use."""
    if max_day < 0:
        return 0
    if food.max_per_day is not None:
        return min(limit, food.max_per_day * (max_day + 1))
    return limit


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array
