"""ASGI entrypoint for the meal suggestion API."""

from meal_assist.api.app import create_app
from meal_assist.containers import build_container

app = create_app(build_container())
