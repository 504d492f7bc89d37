"""ASGI entrypoint for the menu planner API."""

from menu_planner.api.app import create_app
from menu_planner.containers import build_container

app = create_app(build_container())
