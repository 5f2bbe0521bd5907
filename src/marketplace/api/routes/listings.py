"""Listing query routes."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from marketplace.db.engine import get_session
from marketplace.models.listing import Listing, ListingStatus
from marketplace.store.listings import ListingQuery, ListingStore

router = APIRouter()


@router.get("/", response_model=List[Listing])
def list_listings(
    status: Optional[ListingStatus] = None,
    featured_only: bool = False,
    industry: Optional[str] = None,
    location_state: Optional[str] = None,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
    confidential_only: bool = False,
    financing_only: bool = False,
    keyword: Optional[str] = None,
    id_prefix: Optional[str] = None,
    sort: Optional[str] = "default",
    limit: int = 50,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    """Filter and sort cached listings. Unknown sort keys are a 422."""
    query = ListingQuery(
        status=status,
        featured_only=featured_only,
        industry=industry,
        location_state=location_state,
        min_price=min_price,
        max_price=max_price,
        confidential_only=confidential_only,
        financing_only=financing_only,
        keyword=keyword,
        id_prefix=id_prefix,
    )
    try:
        listings = ListingStore(session.get_bind()).list(query, sort=sort)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return listings[offset:offset + limit]


@router.get("/{listing_id}", response_model=Listing)
def get_listing(listing_id: str, session: Session = Depends(get_session)):
    """Fetch a single listing by id."""
    listing = ListingStore(session.get_bind()).get_by_id(listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    return listing
