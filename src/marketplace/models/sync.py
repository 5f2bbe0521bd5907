"""Sync metadata and the sync audit log."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlmodel import Field, SQLModel


class SyncStatus(str, Enum):
    never = "never"
    ok = "ok"
    skipped = "skipped"
    error = "error"


class SyncMeta(BaseModel):
    """Latest outcome of a named sync job. Stored as one JSON value in the meta table."""

    status: SyncStatus = SyncStatus.never
    last_at: Optional[str] = None  # ISO-8601
    last_count: Optional[int] = None
    last_error: Optional[str] = None


class SyncLog(SQLModel, table=True):
    """Records each reconciliation attempt for audit and debugging."""

    id: Optional[int] = Field(default=None, primary_key=True)
    job: str = Field(default="listings", index=True)
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: str = "running"  # "running", "success", "partial", "error"
    records_synced: int = 0
    records_deleted: int = 0
    error_message: Optional[str] = None
