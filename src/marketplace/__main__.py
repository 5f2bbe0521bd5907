"""
Main entrypoint: runs the background sync loop, or one operation and exits.

FastAPI runs separately under uvicorn (operator endpoints).

Usage:
    python -m marketplace                    # scheduler loop (sync + flush)
    python -m marketplace sync [--force]     # one listings reconciliation
    python -m marketplace flush [--limit N]  # one outbox flush
    python -m marketplace status             # print sync + outbox state
    uvicorn marketplace.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_sync(force: bool) -> int:
    from marketplace.db.engine import get_engine
    from marketplace.sync.reconciler import ListingsReconciler

    reconciler = ListingsReconciler.from_settings(get_engine())
    result = await reconciler.reconcile(force=force)
    print(f"sync: {result.status}"
          + (f" ({result.reason})" if result.reason else "")
          + f" imported={result.imported} deleted={result.deleted} failed={result.failed}")
    return 0 if result.status != "error" else 1


async def _run_flush(limit: int) -> int:
    from marketplace.config import get_settings
    from marketplace.db.engine import get_engine
    from marketplace.outbox.queue import Outbox

    outbox = Outbox.from_settings(get_engine())
    result = await outbox.flush(limit=limit or get_settings().outbox_flush_limit)
    print(f"flush: processed={result.processed} succeeded={result.succeeded} "
          f"failed={result.failed} pending={outbox.pending_count()}")
    return 0


def _run_status() -> int:
    from marketplace.db.engine import get_engine
    from marketplace.outbox.queue import Outbox
    from marketplace.store.kv import KeyValueStore
    from marketplace.sync.reconciler import read_sync_meta

    engine = get_engine()
    meta = read_sync_meta(KeyValueStore(engine))
    print(f"listings sync: {meta.status.value} at={meta.last_at} "
          f"count={meta.last_count} error={meta.last_error}")

    outbox = Outbox(engine)
    items = outbox.list_items()
    print(f"outbox: {len(items)} pending")
    for item in items:
        print(f"  {item.item_id} {item.type.value} attempts={item.attempts} "
              f"next={item.next_attempt_at} error={item.last_error}")
    return 0


async def _run_loop() -> None:
    from marketplace.config import get_settings
    from marketplace.db.engine import get_engine
    from marketplace.scheduler.jobs import _listings_sync, _outbox_flush, build_scheduler

    settings = get_settings()
    engine = get_engine()

    if not settings.supabase_configured:
        logger.info("SUPABASE_URL not set; leads will queue locally until configured.")

    # Catch up once at startup, then hand over to the scheduler
    await _listings_sync(engine)
    await _outbox_flush(engine)

    scheduler = build_scheduler(engine)
    scheduler.start()
    logger.info(
        "Scheduler started (listings every %d min, outbox every %d min)",
        settings.listings_sync_interval_minutes,
        settings.outbox_flush_interval_minutes,
    )

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="marketplace")
    sub = parser.add_subparsers(dest="command")

    sync = sub.add_parser("sync", help="reconcile listings once")
    sync.add_argument("--force", action="store_true", help="ignore the throttle window")

    flush = sub.add_parser("flush", help="deliver due outbox items once")
    flush.add_argument("--limit", type=int, default=0, help="max items (0 = configured limit)")

    sub.add_parser("status", help="print sync metadata and pending outbox items")
    return parser


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "sync":
        return asyncio.run(_run_sync(args.force))
    if args.command == "flush":
        return asyncio.run(_run_flush(args.limit))
    if args.command == "status":
        return _run_status()

    asyncio.run(_run_loop())
    return 0


if __name__ == "__main__":
    sys.exit(main())
