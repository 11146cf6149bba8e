"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the placement service and registers routers.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from vmplacement.controllers.placement_controller import router as placement_router
from vmplacement.services.placement_service import PlacementService
from vmplacement.utils.config import Settings, get_settings
from vmplacement.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    The placement service is the only stateful component (its bounded result
    history); it lives on app.state so every request shares it.
    """
    resolved_settings = settings or get_settings()
    placement_service = PlacementService(settings=resolved_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Log readiness before accepting requests."""
        logger.info(
            "Startup complete | population_size=%s | max_iterations=%s | history_size=%s",
            resolved_settings.optimizer_population_size,
            resolved_settings.optimizer_max_iterations,
            resolved_settings.placement_history_size,
        )
        yield

    app = FastAPI(
        title=resolved_settings.app_name,
        version=resolved_settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(placement_router)

    app.state.placement_service = placement_service

    return app


# Module-level app object for uvicorn
app = create_app()
