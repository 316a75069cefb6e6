"""
Anomaly schemas.

Anomaly details are a tagged union keyed by ``type``: each anomaly type
carries its own payload model. ``AnomalyDetails`` validates a stored
``details`` JSON blob back into the right variant.
"""

from pydantic import BaseModel, Field, TypeAdapter
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from backend.app.models.trip_enums import AnomalyType, AnomalySeverity


class GeoPoint(BaseModel):
    lat: float
    lng: float


class GpsJumpDetails(BaseModel):
    type: Literal["GPS_JUMP"] = "GPS_JUMP"
    previous_point: GeoPoint
    distance_meters: float
    time_seconds: float


class SpeedViolationDetails(BaseModel):
    type: Literal["SPEED_VIOLATION"] = "SPEED_VIOLATION"
    speed_kmh: int
    max_allowed_kmh: float


class LongStopDetails(BaseModel):
    type: Literal["LONG_STOP"] = "LONG_STOP"
    stop_id: int
    duration_minutes: int
    threshold_minutes: int


class MileageDiscrepancyDetails(BaseModel):
    type: Literal["MILEAGE_DISCREPANCY"] = "MILEAGE_DISCREPANCY"
    expected_km: int  # GPS-derived
    actual_km: int  # From odometer readings
    difference_km: int


class RouteDeviationDetails(BaseModel):
    type: Literal["ROUTE_DEVIATION"] = "ROUTE_DEVIATION"
    deviation_meters: float
    expected_point: Optional[GeoPoint] = None


class MissedLocationDetails(BaseModel):
    type: Literal["MISSED_LOCATION"] = "MISSED_LOCATION"
    site_id: Optional[int] = None
    minutes_since_start: Optional[int] = None
    reason: Optional[str] = None


class UnplannedStopDetails(BaseModel):
    type: Literal["UNPLANNED_STOP"] = "UNPLANNED_STOP"
    stop_id: int
    duration_minutes: int


AnomalyDetails = Annotated[
    Union[
        GpsJumpDetails,
        SpeedViolationDetails,
        LongStopDetails,
        MileageDiscrepancyDetails,
        RouteDeviationDetails,
        MissedLocationDetails,
        UnplannedStopDetails,
    ],
    Field(discriminator="type"),
]

anomaly_details_adapter = TypeAdapter(AnomalyDetails)


class AnomalyResponse(BaseModel):
    """Schema for anomaly response."""
    id: int
    trip_id: int
    type: AnomalyType
    severity: AnomalySeverity
    latitude: Optional[float]
    longitude: Optional[float]
    details: AnomalyDetails
    resolved: bool
    resolved_by_id: Optional[int]
    resolved_at: Optional[datetime]
    resolution_notes: Optional[str]
    detected_at: datetime

    class Config:
        from_attributes = True


class AnomalyListResponse(BaseModel):
    anomalies: List[AnomalyResponse]
    total: int


class ResolveAnomaly(BaseModel):
    """Schema for resolving an anomaly."""
    notes: Optional[str] = Field(None, max_length=1000)
