"""
Lead capture: buyer "request details" inquiries and seller callback requests.

Each submission is written to the local `lead` table first, then two intents
go into the outbox: the remote lead insert and the matching team
notification email. Nothing here touches the network; delivery happens on
the next outbox flush.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from marketplace.clock import Clock, to_iso
from marketplace.models.lead import Lead, LeadType
from marketplace.models.listing import Listing
from marketplace.models.outbox import OutboxType
from marketplace.outbox.payloads import validate_payload
from marketplace.sync.parser import format_gbp

logger = logging.getLogger(__name__)

# Lead column → camelCase key used in remote payloads
_PAYLOAD_KEYS = {
    "id": "id",
    "type": "type",
    "listing_id": "listingId",
    "name": "name",
    "email": "email",
    "phone": "phone",
    "callback_window": "callbackWindow",
    "message": "message",
    "industry": "industry",
    "location": "location",
    "income_mix": "incomeMix",
    "practice_type": "practiceType",
    "surgeries_count": "surgeriesCount",
    "tenure": "tenure",
    "readiness": "readiness",
    "timeline": "timeline",
    "revenue_range": "revenueRange",
    "earnings_range": "earningsRange",
}


def lead_to_payload(lead: Lead) -> Dict[str, Any]:
    """Serialize a Lead the way the remote `leads` sink expects it."""
    body = {key: getattr(lead, column) for column, key in _PAYLOAD_KEYS.items()}
    body["createdAt"] = to_iso(lead.created_at)
    return body


def _or_blank(value) -> str:
    return "" if value is None else str(value)


def build_inquiry_email(listing: Listing, lead: Lead) -> Dict[str, Any]:
    """Subject, plain-text body and context for a buyer inquiry notification."""
    title = (listing.title or "").strip() or "Listing"
    subject = f"Request details: {title} ({listing.id})"

    lines = [
        "New request for details",
        "",
        "Practice / listing",
        f"- ID: {listing.id}",
        f"- Title: {listing.title}",
        f"- Industry: {listing.industry}",
        f"- Location: {listing.location_city}, {listing.location_state}",
        f"- Asking price: {format_gbp(listing.asking_price)}",
    ]
    if listing.more_info_url:
        lines.append(f"- More info: {listing.more_info_url}")
    lines += [
        "",
        "User",
        f"- Name: {lead.name}",
        f"- Email: {_or_blank(lead.email)}",
        f"- Phone: {_or_blank(lead.phone)}",
        f"- Message: {_or_blank(lead.message)}",
        f"- Lead ID: {lead.id}",
        f"- Submitted: {to_iso(lead.created_at)}",
    ]

    return {
        "listing": {
            "id": listing.id,
            "title": listing.title,
            "industry": listing.industry,
            "locationCity": listing.location_city,
            "locationState": listing.location_state,
            "askingPrice": listing.asking_price,
            "moreInfoUrl": listing.more_info_url,
        },
        "lead": {
            "id": lead.id,
            "name": lead.name,
            "email": lead.email,
            "phone": lead.phone,
            "message": lead.message,
            "createdAt": to_iso(lead.created_at),
        },
        "subject": subject,
        "text": "\n".join(lines),
    }


def build_seller_email(lead: Lead) -> Dict[str, Any]:
    """Subject, plain-text body and context for a seller callback notification."""
    lines = [
        "New seller callback request",
        "",
        "User",
        f"- Name: {lead.name}",
        f"- Email: {_or_blank(lead.email)}",
        f"- Phone: {_or_blank(lead.phone)}",
        f"- Preferred callback time: {_or_blank(lead.callback_window)}",
        f"- Message: {_or_blank(lead.message)}",
        "",
        "Practice",
        f"- Industry: {_or_blank(lead.industry)}",
        f"- Location: {_or_blank(lead.location)}",
        f"- Income mix: {_or_blank(lead.income_mix)}",
        f"- Practice type: {_or_blank(lead.practice_type)}",
        f"- Surgeries: {_or_blank(lead.surgeries_count)}",
        f"- Freehold/leasehold: {_or_blank(lead.tenure)}",
        f"- Ready now/future: {_or_blank(lead.readiness)}",
        f"- Timeline: {_or_blank(lead.timeline)}",
        f"- Revenue range: {_or_blank(lead.revenue_range)}",
        f"- Earnings range: {_or_blank(lead.earnings_range)}",
        "",
        f"- Lead ID: {lead.id}",
        f"- Submitted: {to_iso(lead.created_at)}",
    ]
    body = lead_to_payload(lead)
    body.pop("type")
    body.pop("listingId")
    return {
        "lead": body,
        "subject": f"Callback request: Sell a practice ({lead.id})",
        "text": "\n".join(lines),
    }


def submit_buyer_inquiry(
    engine,
    outbox,
    listing: Listing,
    *,
    name: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    message: Optional[str] = None,
    user_id: Optional[str] = None,
    clock: Optional[Clock] = None,
) -> Lead:
    """
    Record a buyer's "request details" inquiry for a listing.

    Args:
        engine: SQLAlchemy engine.
        outbox: Outbox the remote intents are queued on.
        listing: The listing being asked about.
        name: Buyer name (required).
        user_id: Signed-in user id, attached remotely only if it still
            matches the session at delivery time.

    Returns:
        The persisted Lead.

    Raises:
        InvalidPayloadError: if the lead cannot be queued (e.g. blank name).
    """
    lead = Lead(
        id=_new_lead_id(),
        type=LeadType.buyer_inquiry.value,
        listing_id=listing.id,
        name=name,
        email=email,
        phone=phone,
        message=message,
        created_at=(clock or Clock()).now(),
    )
    _enqueue_intents(engine, outbox, lead, user_id, OutboxType.email_inquiry,
                     build_inquiry_email(listing, lead))
    return lead


def submit_seller_intake(
    engine,
    outbox,
    *,
    name: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    callback_window: Optional[str] = None,
    message: Optional[str] = None,
    industry: Optional[str] = None,
    location: Optional[str] = None,
    income_mix: Optional[str] = None,
    practice_type: Optional[str] = None,
    surgeries_count: Optional[int] = None,
    tenure: Optional[str] = None,
    readiness: Optional[str] = None,
    timeline: Optional[str] = None,
    revenue_range: Optional[str] = None,
    earnings_range: Optional[str] = None,
    user_id: Optional[str] = None,
    clock: Optional[Clock] = None,
) -> Lead:
    """Record a seller's callback request. Same flow as submit_buyer_inquiry."""
    lead = Lead(
        id=_new_lead_id(),
        type=LeadType.seller_intake.value,
        name=name,
        email=email,
        phone=phone,
        callback_window=callback_window,
        message=message,
        industry=industry,
        location=location,
        income_mix=income_mix,
        practice_type=practice_type,
        surgeries_count=surgeries_count,
        tenure=tenure,
        readiness=readiness,
        timeline=timeline,
        revenue_range=revenue_range,
        earnings_range=earnings_range,
        created_at=(clock or Clock()).now(),
    )
    _enqueue_intents(engine, outbox, lead, user_id, OutboxType.email_seller,
                     build_seller_email(lead))
    return lead


def list_leads(engine, type_: Optional[LeadType] = None) -> List[Lead]:
    """Local leads, newest first."""
    stmt = select(Lead)
    if type_ is not None:
        stmt = stmt.where(Lead.type == LeadType(type_).value)
    with Session(engine) as s:
        return list(s.exec(stmt.order_by(Lead.created_at.desc())).all())


def _new_lead_id() -> str:
    return f"lead_{uuid.uuid4().hex}"


def _enqueue_intents(
    engine,
    outbox,
    lead: Lead,
    user_id: Optional[str],
    email_type: OutboxType,
    email_payload: Dict[str, Any],
) -> None:
    lead_payload: Dict[str, Any] = {"lead": lead_to_payload(lead)}
    if user_id:
        lead_payload["userId"] = user_id

    # Validate both intents before anything is written
    validate_payload(OutboxType.lead_insert, lead_payload)
    validate_payload(email_type, email_payload)

    with Session(engine) as s:
        s.add(lead)
        s.commit()
        s.refresh(lead)

    outbox.enqueue(OutboxType.lead_insert, lead_payload)
    outbox.enqueue(email_type, email_payload)
    logger.info("Lead %s (%s) saved and queued", lead.id, lead.type)
