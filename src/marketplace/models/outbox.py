"""Outbox model: durable queue of not-yet-acknowledged remote mutations."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class OutboxType(str, Enum):
    lead_insert = "lead_insert"
    email_inquiry = "email_inquiry"
    email_seller = "email_seller"


class OutboxItem(SQLModel, table=True):
    """
    One pending mutation intent.

    Lives from enqueue until the sink confirms success. Failures only push
    next_attempt_at further out; the row is never dropped by the queue.
    """

    __tablename__ = "outbox"

    # Surrogate key; also breaks created_at ties so FIFO order is stable
    id: Optional[int] = Field(default=None, primary_key=True)
    item_id: str = Field(unique=True, index=True)
    type: OutboxType
    payload_json: str = "{}"
    attempts: int = 0
    last_error: Optional[str] = None
    next_attempt_at: Optional[datetime] = Field(default=None, index=True)  # None = due now
    leased_until: Optional[datetime] = None
    created_at: datetime
