"""
GPS tracking schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional
from backend.app.models.trip_enums import PointFilterReason


class PointRecord(BaseModel):
    """Schema for one GPS point reported by the device."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy_meters: Optional[float] = Field(None, ge=0)
    speed_mps: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    heading: Optional[float] = Field(None, ge=0, le=360)
    altitude: Optional[float] = Field(None, allow_inf_nan=False)
    recorded_at: Optional[datetime] = None  # Defaults to server time


class PointBatch(BaseModel):
    """Points buffered on the device while offline, in recording order."""
    points: List[PointRecord] = Field(..., min_length=1, max_length=1000)


class PointRecordResponse(BaseModel):
    """Result of ingesting one point."""
    point_id: int
    rejected: bool
    reason: Optional[PointFilterReason] = None


class BatchResponse(BaseModel):
    """Result of ingesting a batch, one entry per submitted point."""
    trip_id: int
    results: List[PointRecordResponse]
    accepted: int
    rejected: int


class TripPointResponse(BaseModel):
    """Accepted GPS point, as returned by the route endpoint."""
    id: int
    latitude: float
    longitude: float
    accuracy_meters: Optional[float]
    speed_mps: Optional[float]
    heading: Optional[float]
    altitude: Optional[float]
    distance_from_prev_meters: float
    recorded_at: datetime

    class Config:
        from_attributes = True


class LiveLocationUpdate(BaseModel):
    """Toggle live location sharing."""
    is_active: bool
