"""Outbox inspection and operator routes."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from marketplace.config import get_settings
from marketplace.db.engine import get_session
from marketplace.models.outbox import OutboxItem
from marketplace.outbox.queue import Outbox

router = APIRouter()


def _build_outbox(engine) -> Outbox:
    return Outbox.from_settings(engine)


@router.get("/", response_model=List[OutboxItem])
def list_outbox(session: Session = Depends(get_session)):
    """All undelivered items, oldest first."""
    return _build_outbox(session.get_bind()).list_items()


@router.post("/flush")
async def flush_outbox(limit: int = 0, session: Session = Depends(get_session)):
    """Deliver due items now. limit=0 uses the configured flush limit."""
    outbox = _build_outbox(session.get_bind())
    result = await outbox.flush(limit=limit or get_settings().outbox_flush_limit)
    return {**result.as_dict(), "pending": outbox.pending_count()}


@router.post("/{item_id}/retry", response_model=OutboxItem)
def retry_outbox_item(item_id: str, session: Session = Depends(get_session)):
    """Make a backed-off item due immediately."""
    outbox = _build_outbox(session.get_bind())
    if not outbox.retry_now(item_id):
        raise HTTPException(status_code=404, detail="Outbox item not found")
    return outbox.get(item_id)
