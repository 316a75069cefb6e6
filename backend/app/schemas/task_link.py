"""
Trip task link schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.models.trip_enums import TripTaskLinkStatus


class TaskLinkCreate(BaseModel):
    """Schema for linking a work item to a trip."""
    task_id: int


class TaskLinkComplete(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class TaskLinkResponse(BaseModel):
    """Schema for task link response."""
    id: int
    trip_id: int
    task_id: int
    status: TripTaskLinkStatus
    verified_by_gps: bool
    verified_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
