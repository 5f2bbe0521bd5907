"""
Enqueue-time validation of outbox payloads.

Every intent is checked against its type's model before it is persisted.
A payload that fails here never reaches the queue.
Extra keys are allowed and kept verbatim.
"""
import json
from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from marketplace.errors import InvalidPayloadError
from marketplace.models.lead import LeadType
from marketplace.models.outbox import OutboxType


class _Loose(BaseModel):
    model_config = ConfigDict(extra="allow")


class LeadBody(_Loose):
    id: str = Field(min_length=1)
    type: LeadType
    name: str = Field(min_length=1)


class LeadInsertPayload(_Loose):
    lead: LeadBody
    userId: Optional[str] = None


class EmailLead(_Loose):
    id: str = Field(min_length=1)


class EmailListing(_Loose):
    id: str = Field(min_length=1)


class SellerEmailPayload(_Loose):
    lead: EmailLead
    subject: str = Field(min_length=1)
    text: str


class InquiryEmailPayload(SellerEmailPayload):
    listing: EmailListing


PAYLOAD_MODELS: Dict[OutboxType, Type[BaseModel]] = {
    OutboxType.lead_insert: LeadInsertPayload,
    OutboxType.email_inquiry: InquiryEmailPayload,
    OutboxType.email_seller: SellerEmailPayload,
}


def coerce_type(value: Union[OutboxType, str]) -> OutboxType:
    try:
        return OutboxType(value)
    except ValueError as exc:
        raise InvalidPayloadError(f"Unknown outbox type: {value!r}") from exc


def validate_payload(type_: Union[OutboxType, str], payload: Any) -> str:
    """
    Check a payload for its outbox type and return it serialized.

    Args:
        type_: OutboxType or its string value.
        payload: The intent body as a JSON-compatible dict.

    Returns:
        The payload as a JSON string, ready to persist.

    Raises:
        InvalidPayloadError: unknown type, wrong shape, or not JSON-serializable.
    """
    outbox_type = coerce_type(type_)
    if not isinstance(payload, dict):
        raise InvalidPayloadError(
            f"{outbox_type.value} payload must be an object, got {type(payload).__name__}"
        )
    try:
        PAYLOAD_MODELS[outbox_type].model_validate(payload)
    except ValidationError as exc:
        raise InvalidPayloadError(f"Invalid {outbox_type.value} payload: {exc}") from exc
    try:
        return json.dumps(payload)
    except (TypeError, ValueError) as exc:
        raise InvalidPayloadError(
            f"{outbox_type.value} payload is not JSON-serializable: {exc}"
        ) from exc
