"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from pantry_planner.nutrients import DEFAULT_TRACKED

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Planner settings loaded from environment variables."""

    penalty_scale_factor: float = 5000.0
    waste_penalty: float = 10000.0
    at_risk_fraction: float = 0.25
    unused_purchase_fraction: float = 0.05
    limit_violation_penalty: float = 8000.0
    virtual_units_per_food: int = 200
    population_size: int = 60
    generations: int = 150
    mutation_start: float = 0.05
    mutation_end: float = 0.005
    tournament_size: int = 3
    initial_assignment_probability: float = 0.02
    progress_interval: int = 10
    polish: bool = True
    max_polish_passes: int = 50
    random_seed: int | None = None
    tracked_nutrients: str | None = None
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_prefix="PLANNER_",
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_tracked_nutrients(raw: str | None) -> tuple[str, ...]:
    """Parse the tracked nutrient keys from env."""
    if raw is None:
        return DEFAULT_TRACKED
    cleaned = raw.strip()
    if cleaned in {"", "*"}:
        return DEFAULT_TRACKED
    keys: list[str] = []
    for chunk in cleaned.split(","):
        value = chunk.strip().lower()
        if not value or value in keys:
            continue
        keys.append(value)
    return tuple(keys) or DEFAULT_TRACKED
