"""
FastAPI application entrypoint for nyx.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from nyx.api.routes import router as api_router
from nyx.core.config import get_settings
from nyx.core.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the sleep digest scheduler next to the HTTP handlers."""
    settings = get_settings()
    if not settings.scheduler_enabled:
        yield
        return

    from workers.sleep_digest.scheduler import build_scheduler

    task = asyncio.create_task(build_scheduler(settings).run_forever())
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Sleep digest scheduler stopped")


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="nyx",
        version="0.1.0",
        description="Links Fitbit accounts and emails a sleep summary every morning.",
        lifespan=_lifespan,
    )
    app.include_router(api_router)
    return app


app = create_app()

__all__ = ["app", "create_app"]
