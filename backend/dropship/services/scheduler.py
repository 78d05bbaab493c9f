"""Background supplier sync — runs due integration syncs on an interval.

Uses FastAPI's lifespan context to start/stop an asyncio background loop.
Disabled unless SYNC_SCHEDULER_ENABLED=true; deployments with several
workers should leave it off and run `python -m dropship.cli sync-due`
from a single cron job instead.

Configuration:
    SYNC_SCHEDULER_ENABLED=true
    SYNC_SCHEDULER_INTERVAL_SECONDS=300
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dropship.config import settings
from dropship.database import async_session
from dropship.logging_setup import configure_logging
from dropship.services.integrations import run_due_syncs
from dropship.services.supplier_client import SupplierAPIClient

logger = logging.getLogger("dropship.scheduler")


async def run_sync_cycle() -> dict | None:
    """One pass over all due integrations in its own transaction."""
    client = SupplierAPIClient()
    try:
        async with async_session() as db:
            try:
                summary = await run_due_syncs(db, client)
                await db.commit()
                return summary
            except Exception:
                await db.rollback()
                raise
    except Exception:
        logger.exception("Supplier sync cycle failed")
        return None


async def _scheduler_loop() -> None:
    interval = settings.sync_scheduler_interval_seconds
    while True:
        summary = await run_sync_cycle()
        if summary:
            logger.info(
                "Sync cycle: %d checked, %d synced, %d failed, %d skipped",
                summary["checked"],
                summary["synced"],
                summary["failed"],
                summary["skipped"],
            )
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the sync loop on startup, cancel on shutdown."""
    configure_logging(settings.log_level)
    if not settings.sync_scheduler_enabled:
        yield
        return

    task = asyncio.create_task(_scheduler_loop())
    logger.info("Supplier sync scheduler started")
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Supplier sync scheduler stopped")
