"""
Durable outbox: persists mutation intents and pushes them to remote sinks.

enqueue() only writes a row; it never touches the network. flush() walks
the due rows oldest-first and, one at a time:
  1. claims a short lease on the row (skipped if another flush holds it)
  2. dispatches the payload through the sink for its type
  3. deletes the row on success, or bumps attempts and schedules the next
     try with exponential backoff on failure

Rows are never dropped on failure. A lease that outlives a crashed flush
simply expires and the row becomes due again, so delivery is at-least-once.
"""
import json
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import delete, func, or_, update
from sqlmodel import Session, select

from marketplace.clock import Clock
from marketplace.config import Settings, get_settings
from marketplace.errors import RETRYABLE_ERRORS, NotConfiguredError
from marketplace.models.outbox import OutboxItem, OutboxType
from marketplace.outbox.payloads import validate_payload
from marketplace.outbox.sinks import Sink

logger = logging.getLogger(__name__)

BACKOFF_BASE = timedelta(seconds=30)
BACKOFF_MAX = timedelta(hours=24)
BACKOFF_MAX_EXPONENT = 16
DEFAULT_FLUSH_LIMIT = 25
DEFAULT_LEASE = timedelta(minutes=5)
MAX_ERROR_LENGTH = 500


def backoff(attempts: int) -> timedelta:
    """30s, 60s, 120s, ... capped at 24h."""
    n = max(0, min(BACKOFF_MAX_EXPONENT, attempts))
    return min(BACKOFF_MAX, BACKOFF_BASE * (2 ** n))


@dataclass
class FlushResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class Outbox:
    """Durable queue of outbound mutations."""

    def __init__(
        self,
        engine,
        sinks: Optional[Mapping[OutboxType, Sink]] = None,
        clock: Optional[Clock] = None,
        lease: timedelta = DEFAULT_LEASE,
    ):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            sinks: One async callable per OutboxType. None means remote
                delivery is not configured; flush() then does nothing.
            clock: Time source; defaults to the wall clock.
            lease: How long a flush owns a row while dispatching it.
        """
        self.engine = engine
        self.sinks = dict(sinks) if sinks is not None else None
        self.clock = clock or Clock()
        self.lease = lease

    @classmethod
    def from_settings(
        cls,
        engine,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> "Outbox":
        from marketplace.outbox.sinks import SupabaseSinks

        settings = settings or get_settings()
        try:
            sinks = SupabaseSinks.from_settings(settings).as_mapping()
        except NotConfiguredError:
            logger.info("Supabase not configured; outbox will queue but not deliver.")
            sinks = None
        return cls(
            engine,
            sinks=sinks,
            clock=clock,
            lease=timedelta(seconds=settings.outbox_lease_seconds),
        )

    # ─── Write side ───────────────────────────────────────────────────────────

    def enqueue(self, type_: Union[OutboxType, str], payload: Dict[str, Any]) -> str:
        """
        Persist a new intent and return its id. No network I/O.

        Raises:
            InvalidPayloadError: if the type is unknown or the payload is malformed.
                Nothing is persisted in that case.
        """
        payload_json = validate_payload(type_, payload)
        item = OutboxItem(
            item_id=f"outbox_{uuid.uuid4().hex}",
            type=OutboxType(type_),
            payload_json=payload_json,
            attempts=0,
            next_attempt_at=None,
            created_at=self.clock.now(),
        )
        with Session(self.engine) as s:
            s.add(item)
            s.commit()
            s.refresh(item)
        logger.debug("Enqueued %s as %s", item.type.value, item.item_id)
        return item.item_id

    async def flush(self, limit: int = DEFAULT_FLUSH_LIMIT) -> FlushResult:
        """
        Dispatch up to `limit` due items, oldest first, sequentially.

        Returns:
            FlushResult counts. Dispatch failures are recorded on the item,
            never raised.
        """
        result = FlushResult()
        if self.sinks is None:
            return result

        for item in self.list_due(limit):
            if not self._claim(item):
                logger.debug("Outbox item %s claimed by another flush", item.item_id)
                continue

            result.processed += 1
            try:
                await self._dispatch(item)
            except Exception as exc:
                result.failed += 1
                message = str(exc) or exc.__class__.__name__
                attempts = self._mark_failure(item, message)
                if isinstance(exc, RETRYABLE_ERRORS):
                    logger.warning(
                        "Outbox %s (%s) failed, attempt %d: %s",
                        item.item_id, item.type.value, attempts, message,
                    )
                else:
                    logger.warning(
                        "Outbox %s (%s) failed unexpectedly, attempt %d",
                        item.item_id, item.type.value, attempts, exc_info=exc,
                    )
            else:
                self._remove(item)
                result.succeeded += 1

        if result.processed:
            logger.info(
                "Outbox flush: %d processed, %d succeeded, %d failed",
                result.processed, result.succeeded, result.failed,
            )
        return result

    def retry_now(self, item_id: str) -> bool:
        """Make an item due immediately (operator action). Attempts are kept."""
        with self.engine.begin() as conn:
            res = conn.execute(
                update(OutboxItem)
                .where(OutboxItem.item_id == item_id)
                .values(next_attempt_at=None)
            )
        return res.rowcount == 1

    # ─── Read side ────────────────────────────────────────────────────────────

    def list_due(self, limit: int = DEFAULT_FLUSH_LIMIT) -> List[OutboxItem]:
        now = self.clock.now()
        stmt = (
            select(OutboxItem)
            .where(or_(OutboxItem.next_attempt_at == None, OutboxItem.next_attempt_at <= now))  # noqa: E711
            .where(or_(OutboxItem.leased_until == None, OutboxItem.leased_until <= now))  # noqa: E711
            .order_by(OutboxItem.created_at, OutboxItem.id)
            .limit(limit)
        )
        with Session(self.engine) as s:
            return list(s.exec(stmt).all())

    def list_items(self) -> List[OutboxItem]:
        with Session(self.engine) as s:
            return list(
                s.exec(select(OutboxItem).order_by(OutboxItem.created_at, OutboxItem.id)).all()
            )

    def get(self, item_id: str) -> Optional[OutboxItem]:
        with Session(self.engine) as s:
            return s.exec(select(OutboxItem).where(OutboxItem.item_id == item_id)).first()

    def pending_count(self) -> int:
        with Session(self.engine) as s:
            return s.exec(select(func.count()).select_from(OutboxItem)).one()

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _claim(self, item: OutboxItem) -> bool:
        """
        Take the lease on item. False if someone else holds it, or if the row
        changed since list_due() read it (another flush already tried it and
        pushed next_attempt_at forward).
        """
        now = self.clock.now()
        with self.engine.begin() as conn:
            res = conn.execute(
                update(OutboxItem)
                .where(OutboxItem.id == item.id)
                .where(OutboxItem.attempts == item.attempts)
                .where(or_(OutboxItem.next_attempt_at == None, OutboxItem.next_attempt_at <= now))  # noqa: E711
                .where(or_(OutboxItem.leased_until == None, OutboxItem.leased_until <= now))  # noqa: E711
                .values(leased_until=now + self.lease)
            )
        return res.rowcount == 1

    async def _dispatch(self, item: OutboxItem) -> None:
        try:
            payload = json.loads(item.payload_json)
        except ValueError:
            payload = {}

        sink = self.sinks.get(OutboxType(item.type))
        if sink is None:
            raise NotConfiguredError(f"No sink for outbox type {item.type.value}")
        await sink(payload)

    def _mark_failure(self, item: OutboxItem, message: str) -> int:
        """Bump attempts in place, schedule the retry and release the lease. Returns the new count."""
        with self.engine.begin() as conn:
            conn.execute(
                update(OutboxItem)
                .where(OutboxItem.id == item.id)
                .values(attempts=OutboxItem.attempts + 1)
            )
            attempts = conn.execute(
                select(OutboxItem.attempts).where(OutboxItem.id == item.id)
            ).scalar_one()
            conn.execute(
                update(OutboxItem)
                .where(OutboxItem.id == item.id)
                .values(
                    last_error=message[:MAX_ERROR_LENGTH],
                    next_attempt_at=self.clock.now() + backoff(attempts),
                    leased_until=None,
                )
            )
        return attempts

    def _remove(self, item: OutboxItem) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(OutboxItem).where(OutboxItem.id == item.id))
