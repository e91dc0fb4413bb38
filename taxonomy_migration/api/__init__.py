"""HTTP control surface."""

from .main import create_app, create_controller

__all__ = ["create_app", "create_controller"]
