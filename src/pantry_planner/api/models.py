"""Pydantic models for planning API payloads."""

import math
from datetime import date

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pantry_planner.domain.foods import AlreadyConsumed, FoodDefinition, TargetRange
from pantry_planner.domain.planning import (
    PlanRequest,
    PlanResult,
    ProgressEvent,
    SearchBudget,
)


class FoodPayload(BaseModel):
    """Food definition from the inventory collaborator."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    nutrients_per_serving: dict[str, float] = Field(
        default_factory=dict, alias="nutrientsPerServing"
    )
    servings_on_hand: int = Field(default=0, ge=0, alias="servingsOnHand")
    expiration: date | None = None
    max_per_day: int | None = Field(default=None, ge=1, alias="maxPerDay")
    shoppable: bool = False
    servings_per_package: int = Field(default=1, ge=1, alias="servingsPerPackage")

    def to_domain(self) -> FoodDefinition:
        return FoodDefinition(
            name=self.name.strip(),
            nutrients=dict(self.nutrients_per_serving),
            servings_on_hand=self.servings_on_hand,
            expiration=self.expiration,
            max_per_day=self.max_per_day,
            shoppable=self.shoppable,
            servings_per_package=self.servings_per_package,
        )

    @classmethod
    def from_domain(cls, food: FoodDefinition) -> "FoodPayload":
        return cls(
            name=food.name,
            nutrients_per_serving=dict(food.nutrients),
            servings_on_hand=food.servings_on_hand,
            expiration=food.expiration,
            max_per_day=food.max_per_day,
            shoppable=food.shoppable,
            servings_per_package=food.servings_per_package,
        )


class TargetPayload(BaseModel):
    """Daily target range; a missing max means unbounded."""

    model_config = ConfigDict(populate_by_name=True)

    minimum: float = Field(default=0.0, ge=0, alias="min")
    maximum: float | None = Field(default=None, alias="max")

    def to_domain(self) -> TargetRange:
        maximum = math.inf if self.maximum is None else self.maximum
        return TargetRange(minimum=self.minimum, maximum=maximum)


class SearchBudgetPayload(BaseModel):
    """Generation count or wall-clock budget."""

    model_config = ConfigDict(populate_by_name=True)

    generations: int | None = Field(default=None, ge=0, alias="generationsOrRestarts")
    wall_clock_seconds: float | None = Field(
        default=None, gt=0, alias="wallClockSeconds"
    )

    @model_validator(mode="after")
    def _single_budget(self) -> "SearchBudgetPayload":
        if self.generations is not None and self.wall_clock_seconds is not None:
            raise ValueError("Give either generationsOrRestarts or wallClockSeconds")
        return self

    def to_domain(self) -> SearchBudget:
        return SearchBudget(
            generations=self.generations, wall_clock_seconds=self.wall_clock_seconds
        )


class AlreadyConsumedPayload(BaseModel):
    """Food already eaten on the first plan day."""

    model_config = ConfigDict(populate_by_name=True)

    nutrients: dict[str, float] = Field(default_factory=dict)
    item_counts: dict[str, int] = Field(default_factory=dict, alias="itemCounts")

    def to_domain(self) -> AlreadyConsumed:
        return AlreadyConsumed(
            nutrients=dict(self.nutrients), item_counts=dict(self.item_counts)
        )


class PlanRequestPayload(BaseModel):
    """One planning request."""

    model_config = ConfigDict(populate_by_name=True)

    foods: list[FoodPayload] = Field(default_factory=list)
    targets: dict[str, TargetPayload] = Field(default_factory=dict)
    horizon_days: int | None = Field(default=None, alias="horizonDays")
    start_date: date | None = Field(default=None, alias="startDate")
    end_date: date | None = Field(default=None, alias="endDate")
    allow_shopping: bool = Field(default=False, alias="allowShopping")
    search_budget: SearchBudgetPayload | None = Field(
        default=None, alias="searchBudget"
    )
    already_consumed: AlreadyConsumedPayload | None = Field(
        default=None, alias="alreadyConsumed"
    )
    seed: int | None = None

    def to_domain(self) -> PlanRequest:
        return PlanRequest(
            foods=tuple(food.to_domain() for food in self.foods),
            targets={key: target.to_domain() for key, target in self.targets.items()},
            horizon_days=self.horizon_days,
            start_date=self.start_date,
            end_date=self.end_date,
            allow_shopping=self.allow_shopping,
            budget=self.search_budget.to_domain() if self.search_budget else None,
            already_consumed=(
                self.already_consumed.to_domain() if self.already_consumed else None
            ),
            seed=self.seed,
        )


class CommitRequestPayload(BaseModel):
    """Foods plus the servings a plan consumed and bought."""

    model_config = ConfigDict(populate_by_name=True)

    foods: list[FoodPayload]
    consumption: dict[str, int] = Field(default_factory=dict)
    purchased: dict[str, int] = Field(default_factory=dict)


def serialize_result(result: PlanResult) -> dict[str, object]:
    """Format a plan result for JSON responses."""
    return {
        "feasible": result.feasible,
        "failureReason": result.failure_reason,
        "startDate": result.horizon.start_date.isoformat(),
        "horizonDays": result.horizon.days,
        "score": result.score,
        "generations": result.generations,
        "dailySchedule": result.daily_schedule,
        "consumption": result.consumption_counts(),
        "consumptionByOrigin": {
            name: {"onHand": tally.on_hand, "virtual": tally.virtual}
            for name, tally in result.consumption.items()
        },
        "shoppingList": [
            {
                "foodName": item.food_name,
                "packagesToBuy": item.packages_to_buy,
                "servingsPerPackage": item.servings_per_package,
                "totalServings": item.total_servings,
            }
            for item in result.shopping_list
        ],
        "wasteReport": {
            "definite": [
                {"foodName": entry.food_name, "count": entry.count}
                for entry in result.waste_report.definite
            ],
            "atRisk": [
                {"foodName": entry.food_name, "count": entry.count}
                for entry in result.waste_report.at_risk
            ],
        },
        "dailyTotals": result.daily_totals,
        "averageTotals": result.average_totals,
        "meals": result.meals,
    }


def serialize_targets(targets: dict[str, TargetRange]) -> dict[str, object]:
    """Format target ranges in the request shape; unbounded max is null."""
    return {
        key: {"min": target.minimum, "max": target.maximum if target.bounded else None}
        for key, target in targets.items()
    }


def serialize_progress(event: ProgressEvent) -> dict[str, object]:
    """Format a progress event for JSON responses."""
    return {
        "generation": event.generation,
        "bestScore": event.best_score,
        "bestScoreNormalized": event.best_score_normalized,
        "elapsedMs": event.elapsed_ms,
        "budgetMs": event.budget_ms,
    }
