"""Registry of nutrients the planner can track."""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from pantry_planner.domain.errors import UnknownNutrientError
from pantry_planner.domain.foods import TargetRange

FALLBACK_WEIGHT = 0.1


@dataclass(frozen=True)
class NutrientDefinition:
    """Declarative nutrient definition."""

    key: str
    display_name: str
    unit: str
    default_min: float
    default_max: float
    weight: float = FALLBACK_WEIGHT


class Nutrient(Enum):
    """Enum of registered nutrients (single source of truth)."""

    CALORIES = NutrientDefinition("calories", "Calories", "kcal", 1900, 2100, 1.0)
    PROTEIN = NutrientDefinition("protein", "Protein", "g", 100, 150, 0.8)
    CARBS = NutrientDefinition("carbs", "Carbs", "g", 150, 280, 0.5)
    TOTAL_FAT = NutrientDefinition("total_fat", "Total Fat", "g", 50, 75, 0.7)
    SATURATED_FAT = NutrientDefinition(
        "saturated_fat", "Saturated Fat", "g", 0, 13, 0.2
    )
    TRANS_FAT = NutrientDefinition("trans_fat", "Trans Fat", "g", 0, 0, 0.8)
    FIBER = NutrientDefinition("fiber", "Fiber", "g", 28, 40, 0.6)
    SUGAR = NutrientDefinition("sugar", "Total Sugars", "g", 0, 100, 0.2)
    ADDED_SUGAR = NutrientDefinition("added_sugar", "Added Sugar", "g", 0, 20, 0.8)
    SODIUM = NutrientDefinition("sodium", "Sodium", "mg", 500, 1500, 0.3)
    CHOLESTEROL = NutrientDefinition("cholesterol", "Cholesterol", "mg", 0, 300, 0.3)
    POTASSIUM = NutrientDefinition("potassium", "Potassium", "mg", 3000, 4700, 0.5)
    CALCIUM = NutrientDefinition("calcium", "Calcium", "mg", 1000, 2500, 0.4)
    IRON = NutrientDefinition("iron", "Iron", "mg", 20, 45, 0.5)
    VITAMIN_D = NutrientDefinition("vitamin_d", "Vitamin D", "mcg", 15, 100, 0.4)
    COST = NutrientDefinition("cost", "Cost", "$ per serving", 0, 3, 1.0)


DEFAULT_TRACKED: tuple[str, ...] = (
    Nutrient.CALORIES.value.key,
    Nutrient.PROTEIN.value.key,
    Nutrient.CARBS.value.key,
    Nutrient.FIBER.value.key,
    Nutrient.SUGAR.value.key,
    Nutrient.SATURATED_FAT.value.key,
    Nutrient.SODIUM.value.key,
)

_BY_KEY: dict[str, NutrientDefinition] = {
    entry.value.key: entry.value for entry in Nutrient
}


def get_nutrient(key: str) -> NutrientDefinition:
    """Return the registered definition for a nutrient key."""
    definition = _BY_KEY.get(key)
    if definition is None:
        raise UnknownNutrientError(key)
    return definition


def resolve_nutrients(keys: Iterable[str]) -> tuple[NutrientDefinition, ...]:
    """Resolve keys to definitions, keeping order and dropping duplicates."""
    seen: dict[str, NutrientDefinition] = {}
    for key in keys:
        if key not in seen:
            seen[key] = get_nutrient(key)
    return tuple(seen.values())


def default_targets(keys: Iterable[str] = DEFAULT_TRACKED) -> dict[str, TargetRange]:
    """Build target ranges from registry defaults."""
    targets: dict[str, TargetRange] = {}
    for definition in resolve_nutrients(keys):
        targets[definition.key] = TargetRange(
            minimum=definition.default_min, maximum=definition.default_max
        )
    return targets


def registry() -> list[dict[str, object]]:
    """Return registered nutrients formatted for API responses."""
    return [
        {
            "key": entry.value.key,
            "displayName": entry.value.display_name,
            "unit": entry.value.unit,
            "defaultMin": entry.value.default_min,
            "defaultMax": entry.value.default_max,
            "weight": entry.value.weight,
        }
        for entry in Nutrient
    ]
