"""Lead capture routes. Submissions are stored locally and queued for delivery."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from marketplace.api.routes.outbox import _build_outbox
from marketplace.db.engine import get_session
from marketplace.errors import InvalidPayloadError
from marketplace.leads import list_leads, submit_buyer_inquiry, submit_seller_intake
from marketplace.models.lead import Lead, LeadType
from marketplace.store.listings import ListingStore

router = APIRouter()


class InquiryRequest(BaseModel):
    listing_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    message: Optional[str] = None
    user_id: Optional[str] = None


class SellerIntakeRequest(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    callback_window: Optional[str] = None
    message: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    income_mix: Optional[str] = None
    practice_type: Optional[str] = None
    surgeries_count: Optional[int] = None
    tenure: Optional[str] = None
    readiness: Optional[str] = None
    timeline: Optional[str] = None
    revenue_range: Optional[str] = None
    earnings_range: Optional[str] = None
    user_id: Optional[str] = None


@router.get("/", response_model=List[Lead])
def get_leads(type: Optional[LeadType] = None, session: Session = Depends(get_session)):
    """Locally captured leads, newest first."""
    return list_leads(session.get_bind(), type)


@router.post("/inquiry", response_model=Lead, status_code=201)
def create_inquiry(request: InquiryRequest, session: Session = Depends(get_session)):
    """Buyer asks for details on a listing."""
    engine = session.get_bind()
    listing = ListingStore(engine).get_by_id(request.listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    try:
        return submit_buyer_inquiry(
            engine,
            _build_outbox(engine),
            listing,
            **request.model_dump(exclude={"listing_id"}),
        )
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@router.post("/seller", response_model=Lead, status_code=201)
def create_seller_intake(request: SellerIntakeRequest, session: Session = Depends(get_session)):
    """Seller asks for a callback about selling their practice."""
    engine = session.get_bind()
    try:
        return submit_seller_intake(engine, _build_outbox(engine), **request.model_dump())
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
