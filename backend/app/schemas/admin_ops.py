"""
Admin operations schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, List, Optional
from backend.app.models.dlq import DLQStatus


class SweepReportResponse(BaseModel):
    """Counts from one sweeper run."""
    auto_closed: int
    long_stops_flagged: int
    empty_trips: int
    failed: int


class DLQEntryResponse(BaseModel):
    id: int
    task_name: str
    error_message: str
    payload: Optional[Dict[str, Any]]
    status: DLQStatus
    retry_count: int
    created_at: datetime

    class Config:
        from_attributes = True


class DLQListResponse(BaseModel):
    entries: List[DLQEntryResponse]
    total: int
