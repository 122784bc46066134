# src/content_guard/main.py
"""Main entry point for the content-guard service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware

from content_guard.api.v1 import moderation_router
from content_guard.core.settings import settings
from content_guard.db.session import create_tables
from content_guard.services.moderation_model import HttpModerationModel
from content_guard.services.processor import FlaggingEngine
from content_guard.services.stores import LoggingNotifier, SqlContentStore

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Automatic content moderation and flagging engine",
    version=settings.app_version,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(moderation_router, prefix="/api/v1")


def build_engine() -> FlaggingEngine:
    """Wire the engine to the HTTP model and the SQL store."""
    return FlaggingEngine(
        HttpModerationModel(),
        SqlContentStore(),
        LoggingNotifier(),
    )


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()
    app.state.engine = build_engine()
    logger.info(
        "%s started (model: %s, max concurrency: %d)",
        settings.app_name,
        settings.moderation_model_url,
        settings.moderation_max_concurrency,
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    engine: FlaggingEngine | None = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.close()
        app.state.engine = None


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("content_guard.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
