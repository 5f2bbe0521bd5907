"""Unit tests for Outbox: backoff schedule, enqueue and single-flush behaviour."""
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlmodel import Session

from marketplace.errors import InvalidPayloadError, NetworkFailureError
from marketplace.models.outbox import OutboxItem, OutboxType
from marketplace.outbox.queue import Outbox, backoff

SELLER_PAYLOAD = {
    "lead": {"id": "lead_2", "name": "Grace"},
    "subject": "Callback request: Sell a practice (lead_2)",
    "text": "New seller callback request",
}


def _sinks(**overrides):
    sinks = {t: AsyncMock() for t in OutboxType}
    sinks.update({OutboxType(k): v for k, v in overrides.items()})
    return sinks


class TestBackoff:
    def test_base_values(self):
        assert backoff(0) == timedelta(seconds=30)
        assert backoff(1) == timedelta(seconds=60)
        assert backoff(3) == timedelta(seconds=240)

    def test_negative_clamped_to_zero(self):
        assert backoff(-4) == backoff(0)

    def test_monotonic_and_capped(self):
        values = [backoff(n) for n in range(0, 40)]
        assert values == sorted(values)
        assert max(values) == timedelta(hours=24)
        assert backoff(16) == timedelta(hours=24)
        assert backoff(1000) == timedelta(hours=24)


class TestEnqueue:
    def test_returns_prefixed_id_and_persists(self, engine, clock):
        outbox = Outbox(engine, clock=clock)
        item_id = outbox.enqueue(OutboxType.email_seller, SELLER_PAYLOAD)

        assert item_id.startswith("outbox_")
        item = outbox.get(item_id)
        assert item.type == OutboxType.email_seller
        assert item.attempts == 0
        assert item.next_attempt_at is None
        assert item.created_at == clock.now()
        assert json.loads(item.payload_json) == SELLER_PAYLOAD

    def test_ids_are_unique(self, engine, clock):
        outbox = Outbox(engine, clock=clock)
        ids = {outbox.enqueue("email_seller", SELLER_PAYLOAD) for _ in range(5)}
        assert len(ids) == 5
        assert outbox.pending_count() == 5

    def test_invalid_payload_persists_nothing(self, engine, clock):
        outbox = Outbox(engine, clock=clock)
        with pytest.raises(InvalidPayloadError):
            outbox.enqueue(OutboxType.lead_insert, {"lead": {"id": "x"}})
        with pytest.raises(InvalidPayloadError):
            outbox.enqueue("carrier_pigeon", SELLER_PAYLOAD)
        assert outbox.pending_count() == 0

    def test_enqueue_does_not_dispatch(self, engine, clock):
        sinks = _sinks()
        Outbox(engine, sinks=sinks, clock=clock).enqueue("email_seller", SELLER_PAYLOAD)
        sinks[OutboxType.email_seller].assert_not_awaited()


class TestFlush:
    @pytest.mark.asyncio
    async def test_no_sinks_configured_returns_zeros(self, engine, clock):
        outbox = Outbox(engine, sinks=None, clock=clock)
        outbox.enqueue("email_seller", SELLER_PAYLOAD)
        result = await outbox.flush()
        assert (result.processed, result.succeeded, result.failed) == (0, 0, 0)
        assert outbox.pending_count() == 1

    @pytest.mark.asyncio
    async def test_success_deletes_item(self, engine, clock):
        sinks = _sinks()
        outbox = Outbox(engine, sinks=sinks, clock=clock)
        outbox.enqueue("email_seller", SELLER_PAYLOAD)

        result = await outbox.flush()

        assert result.as_dict() == {"processed": 1, "succeeded": 1, "failed": 0}
        assert outbox.pending_count() == 0
        sinks[OutboxType.email_seller].assert_awaited_once_with(SELLER_PAYLOAD)

    @pytest.mark.asyncio
    async def test_failure_records_attempt_and_backoff(self, engine, clock):
        sink = AsyncMock(side_effect=NetworkFailureError("timeout"))
        outbox = Outbox(engine, sinks=_sinks(email_seller=sink), clock=clock)
        item_id = outbox.enqueue("email_seller", SELLER_PAYLOAD)

        result = await outbox.flush()

        assert result.failed == 1
        item = outbox.get(item_id)
        assert item.attempts == 1
        assert item.last_error == "timeout"
        assert item.next_attempt_at == clock.now() + timedelta(seconds=60)
        assert item.leased_until is None

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded_not_raised(self, engine, clock):
        sink = AsyncMock(side_effect=KeyError("boom"))
        outbox = Outbox(engine, sinks=_sinks(email_seller=sink), clock=clock)
        item_id = outbox.enqueue("email_seller", SELLER_PAYLOAD)

        result = await outbox.flush()

        assert result.failed == 1
        assert outbox.get(item_id).attempts == 1

    @pytest.mark.asyncio
    async def test_long_error_truncated(self, engine, clock):
        sink = AsyncMock(side_effect=NetworkFailureError("x" * 2000))
        outbox = Outbox(engine, sinks=_sinks(email_seller=sink), clock=clock)
        item_id = outbox.enqueue("email_seller", SELLER_PAYLOAD)
        await outbox.flush()
        assert len(outbox.get(item_id).last_error) == 500

    @pytest.mark.asyncio
    async def test_missing_sink_counts_as_failure(self, engine, clock):
        sinks = _sinks()
        del sinks[OutboxType.email_seller]
        outbox = Outbox(engine, sinks=sinks, clock=clock)
        item_id = outbox.enqueue("email_seller", SELLER_PAYLOAD)

        result = await outbox.flush()

        assert result.failed == 1
        assert "No sink" in outbox.get(item_id).last_error

    @pytest.mark.asyncio
    async def test_not_due_items_skipped(self, engine, clock):
        sink = AsyncMock(side_effect=NetworkFailureError("down"))
        outbox = Outbox(engine, sinks=_sinks(email_seller=sink), clock=clock)
        outbox.enqueue("email_seller", SELLER_PAYLOAD)
        await outbox.flush()

        clock.advance(seconds=59)
        result = await outbox.flush()
        assert result.processed == 0
        assert sink.await_count == 1

    @pytest.mark.asyncio
    async def test_fifo_order_and_limit(self, engine, clock):
        seen = []

        async def record(payload):
            seen.append(payload["lead"]["id"])

        outbox = Outbox(engine, sinks=_sinks(email_seller=record), clock=clock)
        for i in range(4):
            outbox.enqueue("email_seller", dict(SELLER_PAYLOAD, lead={"id": f"lead_{i}"}))

        result = await outbox.flush(limit=3)

        assert result.processed == 3
        assert seen == ["lead_0", "lead_1", "lead_2"]
        assert outbox.pending_count() == 1

    @pytest.mark.asyncio
    async def test_leased_item_is_not_claimed_twice(self, engine, clock):
        sinks = _sinks()
        outbox = Outbox(engine, sinks=sinks, clock=clock)
        item_id = outbox.enqueue("email_seller", SELLER_PAYLOAD)
        with Session(engine) as s:
            item = s.get(OutboxItem, outbox.get(item_id).id)
            item.leased_until = clock.now() + timedelta(minutes=5)
            s.add(item)
            s.commit()

        result = await outbox.flush()

        assert result.processed == 0
        sinks[OutboxType.email_seller].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_lease_is_reclaimed(self, engine, clock):
        sinks = _sinks()
        outbox = Outbox(engine, sinks=sinks, clock=clock)
        item_id = outbox.enqueue("email_seller", SELLER_PAYLOAD)
        with Session(engine) as s:
            item = s.get(OutboxItem, outbox.get(item_id).id)
            item.leased_until = clock.now() - timedelta(seconds=1)
            s.add(item)
            s.commit()

        result = await outbox.flush()
        assert result.succeeded == 1

    @pytest.mark.asyncio
    async def test_malformed_stored_payload_dispatches_empty_dict(self, engine, clock):
        sinks = _sinks()
        outbox = Outbox(engine, sinks=sinks, clock=clock)
        item_id = outbox.enqueue("email_seller", SELLER_PAYLOAD)
        with Session(engine) as s:
            item = s.get(OutboxItem, outbox.get(item_id).id)
            item.payload_json = "{broken"
            s.add(item)
            s.commit()

        await outbox.flush()
        sinks[OutboxType.email_seller].assert_awaited_once_with({})


class TestRetryNow:
    @pytest.mark.asyncio
    async def test_makes_item_due_and_keeps_attempts(self, engine, clock):
        sink = AsyncMock(side_effect=NetworkFailureError("down"))
        outbox = Outbox(engine, sinks=_sinks(email_seller=sink), clock=clock)
        item_id = outbox.enqueue("email_seller", SELLER_PAYLOAD)
        await outbox.flush()

        assert outbox.retry_now(item_id) is True
        item = outbox.get(item_id)
        assert item.next_attempt_at is None
        assert item.attempts == 1
        assert len(outbox.list_due()) == 1

    def test_unknown_item(self, engine, clock):
        assert Outbox(engine, clock=clock).retry_now("outbox_missing") is False
