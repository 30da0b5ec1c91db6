"""
FastAPI application entrypoint for the MercadoLibre integration service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.dependencies import get_token_refresh_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the token refresh sweep for the lifetime of the application."""
    settings = get_settings()
    scheduler = None
    if settings.scheduler.enabled:
        scheduler = get_token_refresh_scheduler()
        scheduler.start()
        logger.info(
            "Token refresh scheduler started",
            extra={"interval_seconds": settings.scheduler.interval_seconds},
        )

    yield

    if scheduler is not None:
        await scheduler.stop()
        logger.info("Token refresh scheduler stopped")


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Inventory MercadoLibre Integration",
        version="0.1.0",
        description="OAuth token lifecycle and product synchronization with MercadoLibre.",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
