"""Lead model: buyer inquiries and seller intakes captured on the device."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class LeadType(str, Enum):
    buyer_inquiry = "buyerInquiry"
    seller_intake = "sellerIntake"


class Lead(SQLModel, table=True):
    id: str = Field(primary_key=True)
    type: str = Field(index=True)  # LeadType value
    listing_id: Optional[str] = Field(default=None, index=True)

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    callback_window: Optional[str] = None  # e.g. "Weekdays after 5pm"
    message: Optional[str] = None

    # Seller-intake fields
    industry: Optional[str] = None
    location: Optional[str] = None
    income_mix: Optional[str] = None  # "NHS", "Private", "Mixed"
    practice_type: Optional[str] = None
    surgeries_count: Optional[int] = None
    tenure: Optional[str] = None  # "Freehold", "Leasehold"
    readiness: Optional[str] = None
    timeline: Optional[str] = None
    revenue_range: Optional[str] = None
    earnings_range: Optional[str] = None

    created_at: datetime
