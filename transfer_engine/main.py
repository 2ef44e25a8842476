from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from transfer_engine import __version__
from transfer_engine.api.router import router as transfers_router
from transfer_engine.core.config import get_settings
from transfer_engine.core.logging import configure_logging, request_id_middleware
from transfer_engine.matching.config import MatchingConfig

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.ENV, settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the effective matching defaults on startup."""
    config = MatchingConfig.from_settings(settings)
    logger.info(f"Starting transfer engine API (env: {settings.ENV})")
    logger.info(
        f"Defaults: window={config.window_days}d, "
        f"matched>={config.min_matched:.2f}, uncertain>={config.min_uncertain:.2f}"
    )
    yield
    logger.info("Transfer engine API stopped")


app = FastAPI(title="Transfer Engine", version=__version__, lifespan=lifespan)
app.middleware("http")(request_id_middleware)
app.include_router(transfers_router)


@app.get("/")
def health_check():
    logger.debug("Health check endpoint called")
    return {"status": "ok"}


@app.get("/healthz")
def healthz():
    logger.debug(f"Healthz endpoint called (env: {settings.ENV})")
    return {"status": "healthy", "env": settings.ENV}
