"""Tests for ListingStore: upsert semantics, filters and sorting."""
from datetime import datetime

import pytest

from marketplace.models.listing import ListingStatus, encode_list
from marketplace.store.listings import ListingQuery, ListingStore


@pytest.fixture(name="store")
def store_fixture(engine, clock) -> ListingStore:
    return ListingStore(engine, clock)


class TestUpsert:
    def test_insert_sets_timestamps_from_clock(self, store, make_listing, clock):
        store.upsert(make_listing("ftaweb-1"))
        stored = store.get_by_id("ftaweb-1")
        assert stored.created_at == clock.now()
        assert stored.updated_at == clock.now()

    def test_upsert_is_idempotent(self, store, make_listing):
        listing = make_listing("ftaweb-1", asking_price=100)
        store.upsert(listing)
        store.upsert(make_listing("ftaweb-1", asking_price=100))
        assert store.list_ids() == ["ftaweb-1"]
        assert store.get_by_id("ftaweb-1").asking_price == 100

    def test_upsert_replaces_mutable_fields(self, store, make_listing):
        store.upsert(make_listing("ftaweb-1", title="Kent", tags_json=encode_list(["A"])))
        store.upsert(make_listing("ftaweb-1", title="Surrey", tags_json=encode_list(["B"])))
        stored = store.get_by_id("ftaweb-1")
        assert stored.title == "Surrey"
        assert stored.tags == ["B"]

    def test_upsert_preserves_created_at(self, store, make_listing, clock):
        store.upsert(make_listing("ftaweb-1"))
        first_created = store.get_by_id("ftaweb-1").created_at

        clock.advance(hours=3)
        store.upsert(make_listing("ftaweb-1", created_at=datetime(2030, 1, 1)))

        stored = store.get_by_id("ftaweb-1")
        assert stored.created_at == first_created
        assert stored.updated_at == clock.now()

    def test_explicit_updated_at_is_kept(self, store, make_listing):
        ts = datetime(2024, 6, 1, 8, 0)
        store.upsert(make_listing("ftaweb-1", updated_at=ts))
        assert store.get_by_id("ftaweb-1").updated_at == ts


class TestReadDelete:
    def test_get_missing(self, store):
        assert store.get_by_id("nope") is None

    def test_delete(self, store, make_listing):
        store.upsert(make_listing("ftaweb-1"))
        assert store.delete("ftaweb-1") is True
        assert store.get_by_id("ftaweb-1") is None

    def test_delete_missing(self, store):
        assert store.delete("nope") is False

    def test_reads_are_detached_copies(self, store, make_listing):
        store.upsert(make_listing("ftaweb-1", title="Kent"))
        first = store.get_by_id("ftaweb-1")
        first.title = "Changed locally"
        assert store.get_by_id("ftaweb-1").title == "Kent"

    def test_set_status_bumps_updated_at(self, store, make_listing, clock):
        store.upsert(make_listing("local-1"))
        clock.advance(minutes=10)
        assert store.set_status("local-1", ListingStatus.archived) is True
        stored = store.get_by_id("local-1")
        assert stored.status == ListingStatus.archived
        assert stored.updated_at == clock.now()

    def test_set_status_missing(self, store):
        assert store.set_status("nope", ListingStatus.archived) is False

    def test_list_ids_prefix(self, store, make_listing):
        store.upsert(make_listing("ftaweb-1"))
        store.upsert(make_listing("local-1"))
        assert store.list_ids(prefix="ftaweb-") == ["ftaweb-1"]
        assert sorted(store.list_ids()) == ["ftaweb-1", "local-1"]


class TestList:
    @pytest.fixture(autouse=True)
    def _seed(self, store, make_listing, clock):
        store.upsert(make_listing(
            "ftaweb-1", title="Kent Family Practice", asking_price=900_000,
            featured=False, confidential=True, updated_at=datetime(2025, 1, 1),
        ))
        store.upsert(make_listing(
            "ftaweb-2", title="Surrey Clinic", location_city="Guildford",
            asking_price=300_000, featured=True, financing_available=True,
            updated_at=datetime(2025, 1, 2),
        ))
        store.upsert(make_listing(
            "local-1", title="Orthodontic Suite", industry="Orthodontics",
            asking_price=600_000, status=ListingStatus.archived,
            updated_at=datetime(2025, 1, 3),
        ))

    def _ids(self, listings):
        return [listing.id for listing in listings]

    def test_no_query_returns_all(self, store):
        assert sorted(self._ids(store.list())) == ["ftaweb-1", "ftaweb-2", "local-1"]

    def test_status_filter(self, store):
        result = store.list(ListingQuery(status=ListingStatus.archived))
        assert self._ids(result) == ["local-1"]

    def test_featured_only(self, store):
        assert self._ids(store.list(ListingQuery(featured_only=True))) == ["ftaweb-2"]

    def test_price_range(self, store):
        result = store.list(ListingQuery(min_price=500_000, max_price=900_000), sort="price")
        assert self._ids(result) == ["local-1", "ftaweb-1"]

    def test_industry(self, store):
        assert self._ids(store.list(ListingQuery(industry="Orthodontics"))) == ["local-1"]

    def test_confidential_and_financing(self, store):
        assert self._ids(store.list(ListingQuery(confidential_only=True))) == ["ftaweb-1"]
        assert self._ids(store.list(ListingQuery(financing_only=True))) == ["ftaweb-2"]

    def test_keyword_matches_city(self, store):
        assert self._ids(store.list(ListingQuery(keyword="guildford"))) == ["ftaweb-2"]

    def test_blank_keyword_ignored(self, store):
        assert len(store.list(ListingQuery(keyword="   "))) == 3

    def test_id_prefix(self, store):
        result = store.list(ListingQuery(id_prefix="ftaweb-"), sort="price")
        assert self._ids(result) == ["ftaweb-2", "ftaweb-1"]

    def test_default_sort_featured_then_recent(self, store):
        assert self._ids(store.list(sort="default")) == ["ftaweb-2", "local-1", "ftaweb-1"]

    def test_price_desc(self, store):
        assert self._ids(store.list(sort="-price")) == ["ftaweb-1", "local-1", "ftaweb-2"]

    def test_updated_sorts(self, store):
        assert self._ids(store.list(sort="updated")) == ["ftaweb-1", "ftaweb-2", "local-1"]
        assert self._ids(store.list(sort="-updated")) == ["local-1", "ftaweb-2", "ftaweb-1"]

    def test_unknown_sort_raises(self, store):
        with pytest.raises(ValueError):
            store.list(sort="cheapest")
