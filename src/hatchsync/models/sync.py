"""Sync audit log model."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncLog(SQLModel, table=True):
    """Records each dispatch attempt that reached the transport. Append-only."""

    id: Optional[int] = Field(default=None, primary_key=True)
    batch_id: str = Field(index=True)
    record_count: int = 0
    success: bool = False
    error_message: Optional[str] = None
    duration_ms: int = 0
    provider_batch_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class SyncStats(SQLModel):
    """Record counts by status. terminal_failed is the subset of failed rows past the retry ceiling."""

    total: int = 0
    synced: int = 0
    pending: int = 0
    failed: int = 0
    terminal_failed: int = 0


class SyncStatus(SQLModel):
    """Point-in-time view of the dispatcher for dashboards."""

    is_online: bool
    dispatching: bool
    last_sync_time: int  # epoch millis of the last attempted send, 0 if never
    sync_interval: float  # seconds
