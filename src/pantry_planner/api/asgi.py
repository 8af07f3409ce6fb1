"""ASGI entrypoint for the pantry planner API."""

from pantry_planner.api.app import create_app
from pantry_planner.containers import build_container

app = create_app(build_container())
