"""Local activity feed shown on the admin dashboard."""
from typing import Optional

from sqlmodel import Field, SQLModel


class ActivityLog(SQLModel, table=True):
    """One row per logged user/system activity. Local only, never synced itself."""

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(default="system", index=True)
    activity_type: str  # "login", "logout", "app_launch", ...
    details_json: str
    timestamp_millis: int = Field(index=True)
