"""
ListingsReconciler: merges the remote listing snapshot into the local store.

Flow for one reconciliation:
  1. Read sync metadata; if the last run succeeded within the throttle
     window (and the call is not forced) return "skipped" with no network call.
  2. Create SyncLog (status="running")
  3. Fetch the snapshot page → parse into listing field dicts
  4. Zero parsed listings → record error, keep every cached listing
  5. (optional) enrich each listing from its detail page, TTL-cached
  6. Upsert every parsed listing (replace by id)
  7. Delete "ftaweb-" listings absent from the snapshot; local listings
     (any other id) are never touched
  8. Record status="ok" in sync metadata; finish SyncLog

On any exception: record status="error" with the message and return an
"error" result. Nothing is re-raised and the cached listings stay as they
were. Retrying is the caller's job.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from marketplace.clock import Clock, parse_iso, to_iso
from marketplace.config import Settings, get_settings
from marketplace.errors import NotConfiguredError
from marketplace.models.listing import REMOTE_ID_PREFIX, Listing
from marketplace.models.sync import SyncLog, SyncMeta, SyncStatus
from marketplace.store.cache import TTLCache
from marketplace.store.kv import KeyValueStore
from marketplace.store.listings import ListingStore
from marketplace.sync.parser import (
    merge_detail_info,
    parse_practice_detail_html,
    parse_practices_for_sale_html,
    reference_from_id,
)

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE = timedelta(hours=12)
EMPTY_SNAPSHOT_MESSAGE = (
    "Parsed 0 listings (site markup may have changed). Keeping cached listings."
)


@dataclass
class ReconcileResult:
    status: str  # "ok", "skipped", "error"
    reason: Optional[str] = None  # "throttled", "parsed_empty", "not_configured", "exception"
    imported: int = 0
    deleted: int = 0
    failed: int = 0


def sync_meta_key(job: str) -> str:
    return f"sync.{job}.v1"


def read_sync_meta(kv: KeyValueStore, job: str = "listings") -> SyncMeta:
    """Load sync metadata for a job; missing or unreadable reads as 'never'."""
    raw = kv.get(sync_meta_key(job))
    if raw is None:
        return SyncMeta()
    try:
        return SyncMeta.model_validate_json(raw)
    except ValidationError:
        logger.warning("Unreadable sync metadata for %s; treating as never synced", job)
        return SyncMeta()


class ListingsReconciler:
    """Pulls the remote listing snapshot into the ListingStore."""

    def __init__(
        self,
        source,
        engine,
        clock: Optional[Clock] = None,
        *,
        job: str = "listings",
        throttle: timedelta = DEFAULT_THROTTLE,
        enrich_details: bool = False,
        detail_max_age: timedelta = timedelta(days=7),
        detail_request_delay: float = 0.5,
    ):
        """
        Args:
            source: ListingsSource (or AsyncMock in tests).
            engine: SQLAlchemy engine (SQLModel create_engine result).
            clock: Time source; defaults to the wall clock.
            job: Sync metadata name.
            throttle: Skip window after a successful run.
            enrich_details: Fetch each practice's detail page as well.
            detail_max_age: How long fetched detail facts stay cached.
            detail_request_delay: Pause between uncached detail fetches.
        """
        self.source = source
        self.engine = engine
        self.clock = clock or Clock()
        self.job = job
        self.throttle = throttle
        self.enrich_details = enrich_details
        self.detail_max_age = detail_max_age
        self.detail_request_delay = detail_request_delay

        self.kv = KeyValueStore(engine)
        self.cache = TTLCache(self.kv, self.clock)
        self.store = ListingStore(engine, self.clock)

    @classmethod
    def from_settings(
        cls,
        engine,
        settings: Optional[Settings] = None,
        source=None,
        clock: Optional[Clock] = None,
    ) -> "ListingsReconciler":
        from marketplace.sync.source import ListingsSource

        settings = settings or get_settings()
        return cls(
            source=source or ListingsSource.from_settings(settings),
            engine=engine,
            clock=clock,
            throttle=timedelta(hours=settings.listings_sync_throttle_hours),
            enrich_details=settings.listings_enrich_details,
            detail_max_age=timedelta(hours=settings.detail_cache_max_age_hours),
        )

    def get_sync_meta(self) -> SyncMeta:
        return read_sync_meta(self.kv, self.job)

    async def reconcile(
        self,
        force: bool = False,
        throttle: Optional[timedelta] = None,
    ) -> ReconcileResult:
        """
        Run one reconciliation pass.

        Args:
            force: Ignore the throttle window.
            throttle: Override the configured throttle window for this call.

        Returns:
            ReconcileResult. Never raises; failures are recorded and returned
            as status="error".
        """
        window = self.throttle if throttle is None else throttle
        meta = self.get_sync_meta()
        if not force and self._within_throttle(meta, window):
            logger.info("Listings sync skipped (last ok at %s)", meta.last_at)
            return ReconcileResult(status="skipped", reason="throttled")

        log = None
        try:
            log = self._create_sync_log()
            document = await self.source.fetch_snapshot()
            parsed = parse_practices_for_sale_html(document)

            if not parsed:
                logger.warning(EMPTY_SNAPSHOT_MESSAGE)
                self._write_meta(
                    status=SyncStatus.error,
                    last_count=0,
                    last_error=EMPTY_SNAPSHOT_MESSAGE,
                )
                self._finish_sync_log(log, status="error", error_message=EMPTY_SNAPSHOT_MESSAGE)
                return ReconcileResult(status="error", reason="parsed_empty")

            if self.enrich_details:
                parsed = [await self._enrich(fields) for fields in parsed]

            next_ids = {fields["id"] for fields in parsed}
            imported, failed = self._upsert_all(parsed)
            if imported == 0:
                raise RuntimeError(
                    f"All {failed} parsed listings failed to persist"
                )

            deleted = self._delete_missing(next_ids)

            self._write_meta(
                status=SyncStatus.ok,
                last_count=imported,
                last_error=None,
            )
            self._finish_sync_log(
                log,
                status="partial" if failed else "success",
                records_synced=imported,
                records_deleted=deleted,
            )
            logger.info(
                "Listings sync ok: %d upserted, %d deleted, %d failed",
                imported, deleted, failed,
            )
            return ReconcileResult(
                status="ok", imported=imported, deleted=deleted, failed=failed
            )

        except NotConfiguredError as exc:
            self._record_error(log, str(exc))
            return ReconcileResult(status="error", reason="not_configured")
        except Exception as exc:
            logger.warning("Listings sync failed: %s", exc)
            self._record_error(log, str(exc) or exc.__class__.__name__)
            return ReconcileResult(status="error", reason="exception")

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _within_throttle(self, meta: SyncMeta, window: timedelta) -> bool:
        if meta.status != SyncStatus.ok or not meta.last_at:
            return False
        try:
            last_at = parse_iso(meta.last_at)
        except ValueError:
            return False
        return self.clock.now() - last_at < window

    def _upsert_all(self, parsed) -> Tuple[int, int]:
        imported = 0
        failed = 0
        for fields in parsed:
            try:
                self.store.upsert(Listing(**fields))
                imported += 1
            except SQLAlchemyError as exc:
                failed += 1
                logger.warning("Could not store listing %s: %s", fields.get("id"), exc)
        return imported, failed

    def _delete_missing(self, next_ids) -> int:
        deleted = 0
        for listing_id in self.store.list_ids(prefix=REMOTE_ID_PREFIX):
            if listing_id not in next_ids:
                if self.store.delete(listing_id):
                    deleted += 1
        return deleted

    async def _enrich(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Merge detail-page facts into fields. Non-fatal: returns fields unchanged on failure."""
        ref = reference_from_id(fields["id"])
        key = f"listingDetail.{ref}.v1"
        max_age_ms = int(self.detail_max_age.total_seconds() * 1000)

        info = self.cache.get(key, max_age_ms)
        if info is None:
            try:
                document = await self.source.fetch_detail(ref)
                info = parse_practice_detail_html(document)
            except Exception as exc:
                logger.info("Detail page for %s unavailable: %s", ref, exc)
                return fields
            self.cache.set(key, info)
            if self.detail_request_delay > 0:
                await asyncio.sleep(self.detail_request_delay)

        return merge_detail_info(fields, info)

    def _record_error(self, log: Optional[SyncLog], message: str) -> None:
        try:
            previous = self.get_sync_meta()
            self._write_meta(
                status=SyncStatus.error,
                last_count=previous.last_count,
                last_error=message,
            )
            if log is not None:
                self._finish_sync_log(log, status="error", error_message=message)
        except Exception:
            logger.exception("Could not record listings sync failure: %s", message)

    def _write_meta(
        self,
        *,
        status: SyncStatus,
        last_count: Optional[int],
        last_error: Optional[str],
    ) -> None:
        meta = SyncMeta(
            status=status,
            last_at=to_iso(self.clock.now()),
            last_count=last_count,
            last_error=last_error,
        )
        self.kv.put(sync_meta_key(self.job), meta.model_dump_json())

    def _create_sync_log(self) -> SyncLog:
        log = SyncLog(job=self.job, started_at=self.clock.now(), status="running")
        with Session(self.engine) as s:
            s.add(log)
            s.commit()
            s.refresh(log)
        return log

    def _finish_sync_log(
        self,
        log: SyncLog,
        *,
        status: str,
        records_synced: int = 0,
        records_deleted: int = 0,
        error_message: Optional[str] = None,
    ) -> None:
        with Session(self.engine) as s:
            db_log = s.get(SyncLog, log.id)
            db_log.status = status
            db_log.finished_at = self.clock.now()
            db_log.records_synced = records_synced
            db_log.records_deleted = records_deleted
            db_log.error_message = error_message
            s.add(db_log)
            s.commit()
