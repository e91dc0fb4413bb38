"""FastAPI application entry point."""

import logging
from typing import Optional

from fastapi import FastAPI

from .routes import migration
from ..controller import MigrationController
from ..engine import build_engine
from ..models.config import MigrationConfig
from ..services.option_store import InMemoryOptionStore, JsonFileOptionStore

logger = logging.getLogger(__name__)


def create_controller(config: MigrationConfig) -> MigrationController:
    """Build the engine and controller once at startup."""
    if config.option_store_path:
        options = JsonFileOptionStore(config.option_store_path)
    else:
        options = InMemoryOptionStore()
    return MigrationController(build_engine(config), options)


def create_app(
    config: Optional[MigrationConfig] = None,
    controller: Optional[MigrationController] = None,
) -> FastAPI:
    """
    Create the API application.

    Args:
        config: Configuration used to build a controller
        controller: Ready-made controller (takes precedence over config)
    """
    app = FastAPI(
        title="Taxonomy Migration API",
        description="Batch control API for migrating connections into taxonomy terms",
        version="1.0.0",
    )

    if controller is None and config is not None:
        controller = create_controller(config)
    app.state.controller = controller

    app.include_router(migration.router, prefix="/api/migration", tags=["migration"])

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app
