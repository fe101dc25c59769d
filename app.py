"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the calendar provider, the availability cache and the scheduling
service, and registers the scheduling router.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.controllers.scheduling_controller import router as scheduling_router
from backend.providers.calendar_provider import build_calendar_provider
from backend.services.availability_cache import AvailabilityCache
from backend.services.scheduling_service import SchedulingService
from backend.utils.config import get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app() -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every dependency is instantiated here and injected via app.state, so the
    whole object graph is traceable from this function.
    """
    settings = get_settings()

    # --- Calendar source (mock or HTTP, chosen by configuration) ---
    provider = build_calendar_provider(settings)

    # --- Two-tier availability cache shared by every request ---
    cache = AvailabilityCache(ttl_seconds=settings.cache_ttl_seconds)

    scheduling_service = SchedulingService(
        provider=provider,
        cache=cache,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Startup complete | provider=%s | cache_ttl_seconds=%s",
            settings.calendar_provider,
            settings.cache_ttl_seconds,
        )
        yield
        await app.state.scheduling_service.aclose()
        logger.info("Shutdown complete | calendar provider closed")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(scheduling_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.availability_cache = cache
    app.state.scheduling_service = scheduling_service

    return app


# Module-level app object for uvicorn
app = create_app()
