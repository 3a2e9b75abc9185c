"""Event intake, sync trigger and status routes."""
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from hatchsync.errors import StoreError, ValidationError
from hatchsync.models.sync import SyncStats, SyncStatus
from hatchsync.sync.engine import CloudSyncEngine

router = APIRouter()


class EnqueueRequest(BaseModel):
    owner_id: Optional[str] = None  # None -> "system"
    kind: str
    payload: Any = None


class EnqueueResponse(BaseModel):
    queued: bool
    id: int


class DispatchResponse(BaseModel):
    outcome: str
    success: bool
    message: str
    batch_id: Optional[str]
    record_count: int
    error: Optional[str]


class SyncLogResponse(BaseModel):
    batch_id: str
    record_count: int
    success: bool
    error_message: Optional[str]
    duration_ms: int
    provider_batch_id: Optional[str]
    created_at: datetime


def get_sync_engine(request: Request) -> CloudSyncEngine:
    return request.app.state.sync_engine


@router.post("/events", response_model=EnqueueResponse)
def enqueue_event(
    body: EnqueueRequest,
    engine: CloudSyncEngine = Depends(get_sync_engine),
):
    """Queue one event for cloud delivery. Returns as soon as it is stored."""
    try:
        record_id = engine.enqueue(body.owner_id, body.kind, body.payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return EnqueueResponse(queued=True, id=record_id)


@router.post("/trigger", response_model=DispatchResponse)
async def trigger_sync(engine: CloudSyncEngine = Depends(get_sync_engine)):
    """Run one explicit sync attempt and report its outcome."""
    result = await engine.sync_now()
    return DispatchResponse(
        outcome=result.outcome.value,
        success=result.success,
        message=result.message,
        batch_id=result.batch_id,
        record_count=result.record_count,
        error=result.error,
    )


@router.get("/status", response_model=SyncStatus)
def sync_status(engine: CloudSyncEngine = Depends(get_sync_engine)):
    return engine.get_status()


@router.get("/stats", response_model=SyncStats)
def sync_stats(engine: CloudSyncEngine = Depends(get_sync_engine)):
    try:
        return engine.get_sync_stats()
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.get("/logs", response_model=List[SyncLogResponse])
def sync_logs(
    limit: int = Query(20, ge=1, le=500),
    engine: CloudSyncEngine = Depends(get_sync_engine),
):
    """Most recent dispatch attempts, newest first."""
    return [
        SyncLogResponse(
            batch_id=log.batch_id,
            record_count=log.record_count,
            success=log.success,
            error_message=log.error_message,
            duration_ms=log.duration_ms,
            provider_batch_id=log.provider_batch_id,
            created_at=log.created_at,
        )
        for log in engine.recent_sync_logs(limit)
    ]


@router.get("/activity")
def recent_activity(
    limit: int = Query(50, ge=1, le=500),
    engine: CloudSyncEngine = Depends(get_sync_engine),
):
    """Local activity feed, newest first."""
    return engine.get_recent_activity(limit)


class ActivityRequest(BaseModel):
    owner_id: Optional[str] = None
    activity_type: str
    details: Any = None


@router.post("/activity", response_model=EnqueueResponse)
def log_activity(
    body: ActivityRequest,
    engine: CloudSyncEngine = Depends(get_sync_engine),
):
    """Record an activity in the local feed and queue it for the cloud."""
    try:
        record_id = engine.log_event(body.owner_id, body.activity_type, body.details)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return EnqueueResponse(queued=True, id=record_id)
