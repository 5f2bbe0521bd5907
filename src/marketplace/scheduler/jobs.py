"""
APScheduler jobs for background sync.

Two interval jobs share the process:
  listings_sync: pull the remote listing snapshot (throttled internally,
                 so a short interval is cheap)
  outbox_flush: push queued leads and notification emails

Job bodies never raise; a failed run is logged and the next tick retries.
"""
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from marketplace.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(engine) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine shared by the reconciler and the outbox.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _listings_sync,
        trigger="interval",
        minutes=settings.listings_sync_interval_minutes,
        id="listings_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"engine": engine},
    )
    scheduler.add_job(
        _outbox_flush,
        trigger="interval",
        minutes=settings.outbox_flush_interval_minutes,
        id="outbox_flush",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"engine": engine},
    )

    return scheduler


async def _listings_sync(engine) -> None:
    """Periodic job: reconcile listings. Skips itself inside the throttle window."""
    from marketplace.sync.reconciler import ListingsReconciler

    logger.info("Listings sync tick at %s", datetime.utcnow().isoformat())
    try:
        reconciler = ListingsReconciler.from_settings(engine)
        result = await reconciler.reconcile()
        logger.info("Listings sync result: %s", result)
    except Exception as exc:
        logger.error("Listings sync job failed: %s", exc)


async def _outbox_flush(engine) -> None:
    """Periodic job: deliver due outbox items."""
    from marketplace.outbox.queue import Outbox

    settings = get_settings()
    try:
        outbox = Outbox.from_settings(engine, settings)
        await outbox.flush(limit=settings.outbox_flush_limit)
    except Exception as exc:
        logger.error("Outbox flush job failed: %s", exc)
