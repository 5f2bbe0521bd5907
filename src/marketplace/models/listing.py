"""Listing model: one row per practice/business for sale."""
import json
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlmodel import Field, SQLModel

# Ids minted by the website importer. The reconciler only ever deletes these.
REMOTE_ID_PREFIX = "ftaweb-"


class ListingStatus(str, Enum):
    active = "active"
    archived = "archived"


class Listing(SQLModel, table=True):
    """
    A listing, keyed by an opaque string id.

    Locally created listings use any id that does not start with
    REMOTE_ID_PREFIX; imported ones are "ftaweb-<reference>".
    """

    id: str = Field(primary_key=True)
    status: ListingStatus = Field(default=ListingStatus.active, index=True)
    featured: bool = Field(default=False, index=True)

    # JSON-encoded List[str]; use the tags/photos properties
    tags_json: str = "[]"
    more_info_url: Optional[str] = None

    title: str
    industry: str
    summary: str

    location_city: str
    location_state: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    asking_price: int = 0
    gross_revenue: Optional[int] = None
    cash_flow: Optional[int] = None
    ebitda: Optional[int] = None

    year_established: Optional[int] = None
    employees_range: Optional[str] = None

    # Detail-page enrichment (only filled when enrichment is enabled)
    freehold_value: Optional[int] = None
    reconstituted_profit: Optional[int] = None
    reconstituted_profit_percent: Optional[float] = None
    udas_count: Optional[int] = None
    udas_price_per_uda: Optional[int] = None
    company_type: Optional[str] = None

    confidential: bool = False
    financing_available: bool = False

    photos_json: str = "[]"

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def tags(self) -> List[str]:
        return _safe_parse_json_list(self.tags_json)

    @property
    def photos(self) -> List[str]:
        return _safe_parse_json_list(self.photos_json)

    @property
    def is_remote(self) -> bool:
        return self.id.startswith(REMOTE_ID_PREFIX)


def encode_list(values: Optional[List[str]]) -> str:
    return json.dumps(list(values or []))


def _safe_parse_json_list(value: Optional[str]) -> List[str]:
    if not isinstance(value, str):
        return []
    try:
        parsed = json.loads(value)
    except ValueError:
        return []
    if not isinstance(parsed, list):
        return []
    return [x for x in parsed if isinstance(x, str)]
