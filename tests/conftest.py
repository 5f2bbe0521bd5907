"""Shared test fixtures."""
from datetime import datetime
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from marketplace.clock import ManualClock
from marketplace.models.lead import Lead  # noqa: F401
from marketplace.models.listing import Listing, ListingStatus
from marketplace.models.meta import MetaEntry  # noqa: F401
from marketplace.models.outbox import OutboxItem  # noqa: F401
from marketplace.models.sync import SyncLog  # noqa: F401

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture() -> ManualClock:
    """A clock parked at 2025-01-15 12:00 UTC."""
    return ManualClock(datetime(2025, 1, 15, 12, 0, 0))


@pytest.fixture(name="listing_page_html")
def listing_page_html_fixture() -> str:
    return (FIXTURES_DIR / "practices_for_sale.html").read_text(encoding="utf-8")


@pytest.fixture(name="detail_page_html")
def detail_page_html_fixture() -> str:
    return (FIXTURES_DIR / "practice_detail.html").read_text(encoding="utf-8")


def _make_listing(listing_id: str = "ftaweb-1", **overrides) -> Listing:
    """A minimal valid Listing; override any field by keyword."""
    fields = dict(
        id=listing_id,
        status=ListingStatus.active,
        title="Kent",
        industry="Dental Practice",
        summary="Ref. 1",
        location_city="Kent",
        location_state="UK",
        asking_price=500_000,
    )
    fields.update(overrides)
    return Listing(**fields)


@pytest.fixture(name="make_listing")
def make_listing_fixture():
    """Factory for unsaved Listings."""
    return _make_listing


@pytest.fixture(name="seeded_listing")
def seeded_listing_fixture(test_session: Session) -> Listing:
    """A persisted remote-origin Listing."""
    listing = _make_listing(
        "ftaweb-1234",
        title="Kent",
        asking_price=1_200_000,
        more_info_url="https://www.ft-associates.com/dental-practices/1234/",
        created_at=datetime(2025, 1, 10, 9, 0),
        updated_at=datetime(2025, 1, 10, 9, 0),
    )
    test_session.add(listing)
    test_session.commit()
    test_session.refresh(listing)
    return listing
