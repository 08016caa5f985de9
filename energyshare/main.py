"""
FastAPI application entry point for the energyshare API.

Wires logging, the database engine lifecycle and the routers.

CHANGELOG:
- 2026-10-06: Register usage router (STORY-109)
- 2026-10-04: Register health router (STORY-107)
- 2026-10-01: Register devices router (STORY-105)
- 2026-09-26: Initial creation (STORY-101)

TODO:
- None
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from energyshare.api.devices import router as devices_router
from energyshare.api.health import router as health_router
from energyshare.api.usage import router as usage_router
from energyshare.config import get_settings
from energyshare.db.session import dispose_engine
from energyshare.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: configure logging, dispose the engine on exit."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info("energyshare API starting (real device API: %s)", settings.USE_REAL_DEVICE_API)
    yield
    await dispose_engine()
    logger.info("energyshare API stopped")


app = FastAPI(
    title="energyshare API",
    description="Shared household device switching and energy usage tracking.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(devices_router)
app.include_router(health_router)
app.include_router(usage_router)


@app.get("/")
async def root() -> dict:
    """Liveness endpoint.

    Returns:
        dict: JSON object with application status.
    """
    return {"status": "ok"}
