"""Integration tests for /outbox and /leads routes."""
from unittest.mock import AsyncMock, patch

import pytest

from marketplace.errors import NetworkFailureError
from marketplace.models.outbox import OutboxType
from marketplace.outbox.queue import Outbox
from marketplace.store.listings import ListingStore

SELLER_PAYLOAD = {
    "lead": {"id": "lead_2", "name": "Grace"},
    "subject": "Callback request: Sell a practice (lead_2)",
    "text": "New seller callback request",
}


@pytest.fixture(name="sinks")
def sinks_fixture():
    return {t: AsyncMock() for t in OutboxType}


@pytest.fixture(name="outbox")
def outbox_fixture(engine, clock, sinks):
    outbox = Outbox(engine, sinks=sinks, clock=clock)
    with patch("marketplace.api.routes.outbox._build_outbox", return_value=outbox), \
         patch("marketplace.api.routes.leads._build_outbox", return_value=outbox):
        yield outbox


class TestOutboxRoutes:
    def test_list_empty(self, client, outbox):
        resp = client.get("/outbox/")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_list_pending(self, client, outbox):
        item_id = outbox.enqueue(OutboxType.email_seller, SELLER_PAYLOAD)
        body = client.get("/outbox/").json()
        assert [i["item_id"] for i in body] == [item_id]
        assert body[0]["type"] == "email_seller"
        assert body[0]["attempts"] == 0

    def test_flush_delivers(self, client, outbox, sinks):
        outbox.enqueue(OutboxType.email_seller, SELLER_PAYLOAD)
        resp = client.post("/outbox/flush")
        assert resp.status_code == 200
        assert resp.json() == {"processed": 1, "succeeded": 1, "failed": 0, "pending": 0}
        sinks[OutboxType.email_seller].assert_awaited_once()

    def test_flush_failure_keeps_item(self, client, outbox, sinks):
        sinks[OutboxType.email_seller].side_effect = NetworkFailureError("offline")
        outbox.enqueue(OutboxType.email_seller, SELLER_PAYLOAD)
        body = client.post("/outbox/flush", params={"limit": 5}).json()
        assert body["failed"] == 1
        assert body["pending"] == 1

    def test_retry_makes_item_due(self, client, outbox, sinks):
        sinks[OutboxType.email_seller].side_effect = NetworkFailureError("offline")
        item_id = outbox.enqueue(OutboxType.email_seller, SELLER_PAYLOAD)
        client.post("/outbox/flush")

        resp = client.post(f"/outbox/{item_id}/retry")
        assert resp.status_code == 200
        assert resp.json()["next_attempt_at"] is None
        assert resp.json()["attempts"] == 1

    def test_retry_unknown_is_404(self, client, outbox):
        assert client.post("/outbox/outbox_missing/retry").status_code == 404


class TestLeadRoutes:
    def test_inquiry_creates_lead_and_intents(self, client, outbox, engine, make_listing):
        ListingStore(engine).upsert(make_listing("ftaweb-1", title="Kent"))

        resp = client.post("/leads/inquiry", json={
            "listing_id": "ftaweb-1", "name": "Ada", "email": "ada@example.com",
        })

        assert resp.status_code == 201
        assert resp.json()["type"] == "buyerInquiry"
        assert [i.type for i in outbox.list_items()] == [
            OutboxType.lead_insert, OutboxType.email_inquiry,
        ]

    def test_inquiry_for_missing_listing_is_404(self, client, outbox):
        resp = client.post("/leads/inquiry", json={"listing_id": "nope", "name": "Ada"})
        assert resp.status_code == 404
        assert outbox.pending_count() == 0

    def test_blank_name_is_422(self, client, outbox):
        resp = client.post("/leads/seller", json={"name": ""})
        assert resp.status_code == 422
        assert outbox.pending_count() == 0

    def test_seller_then_list(self, client, outbox):
        client.post("/leads/seller", json={"name": "Grace", "surgeries_count": 3})
        resp = client.get("/leads/", params={"type": "sellerIntake"})
        assert resp.status_code == 200
        assert [lead["name"] for lead in resp.json()] == ["Grace"]
        assert resp.json()[0]["surgeries_count"] == 3
