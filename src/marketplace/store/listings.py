"""
Listing record store.

All reads return fresh, detached Listing objects; callers never hold a row
that the reconciler could change underneath them. upsert() is a single
INSERT ... ON CONFLICT(id) DO UPDATE statement so each record is replaced
atomically.
"""
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.dialects.sqlite import insert
from sqlmodel import Session, select

from marketplace.clock import Clock
from marketplace.models.listing import Listing, ListingStatus

# Columns never touched by an upsert of an existing id
_IMMUTABLE_COLUMNS = {"id", "created_at"}

SORT_KEYS = {
    "default": (Listing.featured.desc(), Listing.updated_at.desc()),
    "price": (Listing.asking_price.asc(),),
    "-price": (Listing.asking_price.desc(),),
    "updated": (Listing.updated_at.asc(),),
    "-updated": (Listing.updated_at.desc(),),
}


@dataclass
class ListingQuery:
    """Filter for ListingStore.list(). Unset fields do not filter."""

    status: Optional[ListingStatus] = None
    featured_only: bool = False
    industry: Optional[str] = None
    location_state: Optional[str] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    confidential_only: bool = False
    financing_only: bool = False
    keyword: Optional[str] = None
    id_prefix: Optional[str] = None


class ListingStore:
    def __init__(self, engine, clock: Optional[Clock] = None):
        self.engine = engine
        self.clock = clock or Clock()

    def upsert(self, listing: Listing) -> None:
        """Insert, or fully replace the mutable fields of, the listing with this id."""
        now = self.clock.now()
        values = listing.model_dump()
        values["created_at"] = values.get("created_at") or now
        values["updated_at"] = values.get("updated_at") or now

        table = Listing.__table__
        stmt = insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                col.name: stmt.excluded[col.name]
                for col in table.columns
                if col.name not in _IMMUTABLE_COLUMNS
            },
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def get_by_id(self, listing_id: str) -> Optional[Listing]:
        with Session(self.engine) as s:
            return s.get(Listing, listing_id)

    def delete(self, listing_id: str) -> bool:
        with Session(self.engine) as s:
            listing = s.get(Listing, listing_id)
            if listing is None:
                return False
            s.delete(listing)
            s.commit()
            return True

    def set_status(self, listing_id: str, status: ListingStatus) -> bool:
        with Session(self.engine) as s:
            listing = s.get(Listing, listing_id)
            if listing is None:
                return False
            listing.status = status
            listing.updated_at = self.clock.now()
            s.add(listing)
            s.commit()
            return True

    def list(
        self,
        query: Optional[ListingQuery] = None,
        sort: Optional[str] = None,
    ) -> List[Listing]:
        """Return all listings matching query.

        Args:
            query: Filters; None returns everything.
            sort: One of SORT_KEYS, or None for unspecified order.

        Raises:
            ValueError: on an unknown sort key.
        """
        q = query or ListingQuery()
        stmt = select(Listing)

        if q.status is not None:
            stmt = stmt.where(Listing.status == q.status)
        if q.featured_only:
            stmt = stmt.where(Listing.featured == True)  # noqa: E712
        if q.industry:
            stmt = stmt.where(Listing.industry == q.industry)
        if q.location_state:
            stmt = stmt.where(Listing.location_state == q.location_state)
        if q.min_price is not None:
            stmt = stmt.where(Listing.asking_price >= q.min_price)
        if q.max_price is not None:
            stmt = stmt.where(Listing.asking_price <= q.max_price)
        if q.confidential_only:
            stmt = stmt.where(Listing.confidential == True)  # noqa: E712
        if q.financing_only:
            stmt = stmt.where(Listing.financing_available == True)  # noqa: E712
        if q.id_prefix:
            stmt = stmt.where(Listing.id.startswith(q.id_prefix, autoescape=True))
        if q.keyword and q.keyword.strip():
            kw = f"%{q.keyword.strip()}%"
            stmt = stmt.where(
                or_(
                    Listing.title.like(kw),
                    Listing.industry.like(kw),
                    Listing.summary.like(kw),
                    Listing.location_city.like(kw),
                    Listing.location_state.like(kw),
                )
            )

        if sort is not None:
            if sort not in SORT_KEYS:
                raise ValueError(f"Unknown sort key: {sort!r}")
            stmt = stmt.order_by(*SORT_KEYS[sort])

        with Session(self.engine) as s:
            return list(s.exec(stmt).all())

    def list_ids(self, prefix: str = "") -> List[str]:
        stmt = select(Listing.id)
        if prefix:
            stmt = stmt.where(Listing.id.startswith(prefix, autoescape=True))
        with Session(self.engine) as s:
            return list(s.exec(stmt).all())
