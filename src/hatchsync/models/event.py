"""Outbox event records."""
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class EventStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class EventRecord(SQLModel, table=True):
    """
    One row per captured application event awaiting (or done with) delivery.

    Rows are never deleted. Once status is "synced" the row is never
    touched again; "failed" rows stay eligible for selection only while
    retry_count < max_retry_attempts.
    """

    # AUTOINCREMENT so a deleted tail id is never handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(default="system", index=True)
    kind: str = Field(index=True)  # "app_launch", "settings_update", "authentication", ...
    payload_json: str  # stored verbatim, never interpreted
    created_at_millis: int
    status: str = Field(default=EventStatus.PENDING.value, index=True)
    retry_count: int = 0

    # Set while a batch containing this record is being sent. A value that
    # survives a restart means the outcome of that send is unknown.
    in_flight_batch_id: Optional[str] = Field(default=None, index=True)
