"""Listings sync trigger and status routes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from marketplace.db.engine import get_engine, get_session
from marketplace.models.sync import SyncLog
from marketplace.store.kv import KeyValueStore
from marketplace.sync.reconciler import ListingsReconciler, read_sync_meta

router = APIRouter()


class SyncTriggerRequest(BaseModel):
    force: bool = False  # Ignore the throttle window


class SyncStatusResponse(BaseModel):
    status: str
    last_at: Optional[str]
    last_count: Optional[int]
    last_error: Optional[str]
    last_run_started_at: Optional[datetime] = None
    last_run_status: Optional[str] = None


async def _do_sync(force: bool = False) -> None:
    """Background task: run one reconciliation against the live source."""
    reconciler = ListingsReconciler.from_settings(get_engine())
    await reconciler.reconcile(force=force)


@router.post("/trigger")
async def trigger_sync(
    request: SyncTriggerRequest,
    background_tasks: BackgroundTasks,
):
    """
    Trigger an on-demand listings sync.
    Returns immediately; sync runs in background.
    """
    background_tasks.add_task(_do_sync, request.force)
    return {"message": "Sync started", "force": request.force}


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(session: Session = Depends(get_session)):
    """Return the listings sync metadata plus the latest audit row, if any."""
    meta = read_sync_meta(KeyValueStore(session.get_bind()))
    log = session.exec(
        select(SyncLog).order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
    ).first()
    return SyncStatusResponse(
        status=meta.status.value,
        last_at=meta.last_at,
        last_count=meta.last_count,
        last_error=meta.last_error,
        last_run_started_at=log.started_at if log else None,
        last_run_status=log.status if log else None,
    )


@router.get("/runs", response_model=List[SyncLog])
def sync_runs(limit: int = 20, session: Session = Depends(get_session)):
    """Recent reconciliation attempts, newest first."""
    return session.exec(
        select(SyncLog)
        .order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
        .limit(limit)
    ).all()
