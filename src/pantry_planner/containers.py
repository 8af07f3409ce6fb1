"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pantry_planner.config import Settings
from pantry_planner.services.inventory import InventoryService
from pantry_planner.services.planning import PlanningService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    planning_service: PlanningService
    inventory_service: InventoryService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    planning_service = PlanningService(resolved_settings)
    inventory_service = InventoryService()

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=resolved_settings,
        planning_service=planning_service,
        inventory_service=inventory_service,
        close_resources=close_resources,
    )
