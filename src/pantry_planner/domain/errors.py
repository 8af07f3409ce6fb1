"""Errors raised at the planning boundary."""


class PlanningError(Exception):
    """Base class for rejected planning requests."""


class InvalidHorizonError(PlanningError):
    """Raised when the planning horizon is empty or reversed."""


class UnknownNutrientError(PlanningError):
    """Raised when a nutrient key is not in the registry."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Unknown nutrient: {key}")
        self.key = key


class InvalidInventoryError(PlanningError):
    """Raised when food definitions or targets are malformed."""
