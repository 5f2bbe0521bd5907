"""
Remote mutation sinks backed by Supabase.

supabase-py is synchronous; we run each call in the thread pool executor so
it doesn't block the asyncio event loop (same approach as any other sync
SDK we wrap).

One sink per outbox type:
  lead_insert    → upsert into the `leads` table (existing id left alone)
  email_inquiry  → invoke the `inquiry-email` edge function
  email_seller   → invoke the `seller-intake-email` edge function

Every sink must tolerate being called twice with the same payload: the
outbox delivers at-least-once. `leads` rows are keyed by the lead id and
written with an upsert that ignores an existing id, so a redelivery is a no-op.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from supabase import Client, create_client

from marketplace.clock import Clock, to_iso
from marketplace.config import Settings, get_settings
from marketplace.errors import (
    InvalidPayloadError,
    NetworkFailureError,
    NotConfiguredError,
    RemoteRejectedError,
)
from marketplace.models.outbox import OutboxType

logger = logging.getLogger(__name__)

Sink = Callable[[Dict[str, Any]], Awaitable[None]]

INQUIRY_EMAIL_FUNCTION = "inquiry-email"
SELLER_EMAIL_FUNCTION = "seller-intake-email"

# camelCase payload key → snake_case `leads` column
_LEAD_COLUMNS = {
    "listingId": "listing_id",
    "email": "email",
    "phone": "phone",
    "callbackWindow": "callback_window",
    "message": "message",
    "industry": "industry",
    "location": "location",
    "incomeMix": "income_mix",
    "practiceType": "practice_type",
    "surgeriesCount": "surgeries_count",
    "tenure": "tenure",
    "readiness": "readiness",
    "timeline": "timeline",
    "revenueRange": "revenue_range",
    "earningsRange": "earnings_range",
}


def build_lead_row(
    payload: Dict[str, Any],
    current_user_id: Optional[str],
    now_iso: str,
) -> Dict[str, Any]:
    """
    Map a lead_insert payload onto a `leads` table row.

    user_id is only set when the signed-in user is the one who submitted
    the lead; otherwise the row is anonymous.

    Raises:
        InvalidPayloadError: if the lead lacks id, type or name.
    """
    lead = payload.get("lead") or {}
    if not isinstance(lead, dict) or not (lead.get("id") and lead.get("type") and lead.get("name")):
        raise InvalidPayloadError("Invalid lead payload")

    intended_user_id = payload.get("userId") if isinstance(payload.get("userId"), str) else None
    user_id = (
        current_user_id
        if current_user_id and intended_user_id and current_user_id == intended_user_id
        else None
    )

    row = {
        "id": str(lead["id"]),
        "type": str(lead["type"]),
        "user_id": user_id,
        "name": str(lead["name"]),
        "created_at": lead.get("createdAt") or now_iso,
    }
    for key, column in _LEAD_COLUMNS.items():
        row[column] = lead.get(key)
    return row


class SupabaseSinks:
    """Dispatches outbox payloads to Supabase."""

    def __init__(self, client: Client, clock: Optional[Clock] = None):
        """
        Args:
            client: supabase Client (or MagicMock in tests).
            clock: Used to stamp leads that carry no createdAt.
        """
        self._client = client
        self.clock = clock or Clock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SupabaseSinks":
        """
        Raises:
            NotConfiguredError: if SUPABASE_URL / SUPABASE_ANON_KEY are unset.
        """
        settings = settings or get_settings()
        if not settings.supabase_configured:
            raise NotConfiguredError("Supabase is not configured")
        return cls(create_client(settings.supabase_url, settings.supabase_anon_key))

    def as_mapping(self) -> Dict[OutboxType, Sink]:
        return {
            OutboxType.lead_insert: self.insert_lead,
            OutboxType.email_inquiry: self.send_inquiry_email,
            OutboxType.email_seller: self.send_seller_email,
        }

    async def insert_lead(self, payload: Dict[str, Any]) -> None:
        current_user_id = await self._run(self._current_user_id)
        row = build_lead_row(payload, current_user_id, to_iso(self.clock.now()))
        await self._run(
            lambda: self._client.table("leads")
            .upsert(row, on_conflict="id", ignore_duplicates=True)
            .execute()
        )

    async def send_inquiry_email(self, payload: Dict[str, Any]) -> None:
        await self._invoke(INQUIRY_EMAIL_FUNCTION, payload)

    async def send_seller_email(self, payload: Dict[str, Any]) -> None:
        await self._invoke(SELLER_EMAIL_FUNCTION, payload)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _current_user_id(self) -> Optional[str]:
        session = self._client.auth.get_session()
        user = getattr(session, "user", None) if session else None
        return getattr(user, "id", None)

    async def _invoke(self, function_name: str, payload: Dict[str, Any]) -> None:
        await self._run(
            lambda: self._client.functions.invoke(
                function_name, invoke_options={"body": payload or {}}
            )
        )

    async def _run(self, fn):
        """Run a sync supabase call in the thread pool, mapping failures to retryable errors."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except httpx.HTTPError as exc:
            raise NetworkFailureError(str(exc) or exc.__class__.__name__) from exc
        except InvalidPayloadError:
            raise
        except Exception as exc:
            raise RemoteRejectedError(str(exc) or exc.__class__.__name__) from exc
