"""
Trip Analytics Schemas.
"""

from pydantic import BaseModel
from typing import Dict, List, Optional


class EmployeeTripStats(BaseModel):
    """Per-employee totals over finished trips (COMPLETED or AUTO_CLOSED)."""
    employee_id: int
    total_trips: int
    total_distance_km: float
    total_sites_visited: int
    total_stops: int
    total_anomalies: int
    avg_trip_duration_minutes: float


class SiteVisitStats(BaseModel):
    """Visits per service site."""
    site_id: int
    site_name: Optional[str]
    total_visits: int
    verified_visits: int
    total_duration_minutes: float
    avg_duration_minutes: float


class SiteVisitStatsResponse(BaseModel):
    sites: List[SiteVisitStats]


class TripsSummary(BaseModel):
    """Organization-wide trip summary for a period."""
    total_trips: int
    trips_by_status: Dict[str, int]
    total_distance_km: float
    total_sites_visited: int
    total_anomalies: int
    unique_employees: int
    unique_vehicles: int
