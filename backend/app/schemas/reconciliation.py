"""
Odometer reconciliation schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class ReconciliationCreate(BaseModel):
    """Schema for recording a physical odometer reading."""
    vehicle_id: int
    actual_odometer: int = Field(..., ge=0)
    notes: Optional[str] = Field(None, max_length=1000)


class ReconciliationResponse(BaseModel):
    """Schema for reconciliation response."""
    id: int
    organization_id: int
    vehicle_id: int
    actual_odometer: int
    expected_odometer: int
    difference_km: int
    threshold_km: int
    is_anomaly: bool
    performed_by_id: int
    performed_at: datetime
    notes: Optional[str]

    class Config:
        from_attributes = True
