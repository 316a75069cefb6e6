"""
Trip lifecycle schemas.

Schemas for starting, ending, cancelling and listing trips.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from backend.app.models.trip_enums import TripStatus, TripTaskType


class TripStart(BaseModel):
    """
    Schema for starting a trip.

    ``employee_id`` lets a supervisor start a trip on behalf of an
    employee; operators always start their own.
    """
    vehicle_id: Optional[int] = None
    task_type: TripTaskType = TripTaskType.OTHER
    start_odometer: Optional[int] = Field(None, ge=0)
    task_ids: List[int] = []
    notes: Optional[str] = Field(None, max_length=2000)
    employee_id: Optional[int] = None


class TripEnd(BaseModel):
    """Schema for ending a trip."""
    end_odometer: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=2000)


class TripCancel(BaseModel):
    """Schema for cancelling a trip."""
    reason: Optional[str] = Field(None, max_length=500)


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    organization_id: int
    employee_id: int
    vehicle_id: Optional[int]
    task_type: TripTaskType
    status: TripStatus
    started_at: datetime
    ended_at: Optional[datetime]
    start_odometer: Optional[int]
    end_odometer: Optional[int]
    calculated_distance_meters: int
    start_latitude: Optional[float]
    start_longitude: Optional[float]
    end_latitude: Optional[float]
    end_longitude: Optional[float]
    start_site_id: Optional[int]
    end_site_id: Optional[int]
    total_points: int
    total_stops: int
    total_anomalies: int
    visited_sites_count: int
    live_location_active: bool
    last_location_update: Optional[datetime]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TripListResponse(BaseModel):
    """Schema for paginated trip list."""
    trips: List[TripResponse]
    total: int
    page: int
    page_size: int


class TripStopResponse(BaseModel):
    """Schema for trip stop response."""
    id: int
    trip_id: int
    latitude: float
    longitude: float
    site_id: Optional[int]
    site_name: Optional[str]
    site_address: Optional[str]
    distance_to_site_meters: Optional[int]
    started_at: datetime
    ended_at: Optional[datetime]
    duration_seconds: Optional[int]
    is_verified: bool
    is_anomaly: bool
    notes: Optional[str]

    class Config:
        from_attributes = True
