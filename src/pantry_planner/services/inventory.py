"""Applying a finished plan back to the inventory snapshot."""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace

from pantry_planner.domain.foods import FoodDefinition
from pantry_planner.domain.planning import PlanResult

_logger = logging.getLogger(__name__)


@dataclass
class InventoryService:
    """Service for updating food snapshots after a plan is eaten."""

    debug: bool = False

    def commit(
        self,
        foods: Sequence[FoodDefinition],
        consumed: Mapping[str, int],
        purchased: Mapping[str, int] | None = None,
    ) -> list[FoodDefinition]:
        """Return foods with bought servings added and eaten servings removed.

        Servings left over in bought packages stay in the inventory.
        """
        bought = purchased or {}
        updated: list[FoodDefinition] = []
        for food in foods:
            remaining = (
                food.servings_on_hand
                + bought.get(food.name, 0)
                - consumed.get(food.name, 0)
            )
            updated.append(replace(food, servings_on_hand=max(0, remaining)))
            if self.debug:
                _logger.info(
                    "Inventory commit: food=%s before=%s after=%s",
                    food.name,
                    food.servings_on_hand,
                    max(0, remaining),
                )
        return updated

    def commit_plan(
        self, foods: Sequence[FoodDefinition], result: PlanResult
    ) -> list[FoodDefinition]:
        """Commit the consumption and shopping list of a plan result."""
        if not result.feasible:
            return list(foods)
        purchased = {
            item.food_name: item.total_servings for item in result.shopping_list
        }
        return self.commit(foods, result.consumption_counts(), purchased)
