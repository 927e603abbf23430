"""FastAPI entrypoint for the home inventory service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from common.config import settings
from common.logging import configure_logging, get_logger

from . import __version__
from .dependencies import get_reconciler, get_task_runner
from .routes import categories_router, frames_router, merge_router, uploads_router, webhook_router
from .scheduler import ReconcileScheduler

configure_logging()
LOGGER = get_logger(__name__)

reconcile_scheduler: Optional[ReconcileScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the task workers and, when configured, the periodic sweep."""
    global reconcile_scheduler

    LOGGER.info("Starting inventory service", environment=settings.environment)
    runner = get_task_runner()
    await runner.start()

    if settings.reconcile_interval_minutes > 0:
        reconcile_scheduler = ReconcileScheduler(
            get_reconciler(), runner, interval_minutes=settings.reconcile_interval_minutes
        )
        await reconcile_scheduler.start()

    yield

    if reconcile_scheduler is not None:
        await reconcile_scheduler.stop()
        reconcile_scheduler = None
    await runner.stop()
    LOGGER.info("Inventory service stopped")


app = FastAPI(title="Home Inventory Service", version=__version__, lifespan=lifespan)
app.include_router(webhook_router)
app.include_router(uploads_router)
app.include_router(merge_router)
app.include_router(frames_router)
app.include_router(categories_router)


@app.get("/healthz")
async def health() -> dict[str, str]:
    return {"status": "ok"}


__all__ = ["app"]
