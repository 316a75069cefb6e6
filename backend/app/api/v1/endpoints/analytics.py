"""
Trip Analytics API Endpoints.

Read-only dashboards over finished trips and stops.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.enums import SUPERVISOR_ROLES
from backend.app.core.guards import require_role
from backend.app.schemas.analytics import EmployeeTripStats, SiteVisitStatsResponse, TripsSummary
from backend.app.services.trip_analytics import TripAnalyticsService

router = APIRouter(prefix="/trips/analytics", tags=["Trips - Analytics"])


@router.get("/employee", response_model=EmployeeTripStats)
async def get_employee_stats(
    employee_id: int = Query(...),
    date_from: datetime = Query(...),
    date_to: datetime = Query(...),
    current_user: dict = Depends(require_role(SUPERVISOR_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await TripAnalyticsService.get_employee_stats(
        db, current_user["organization_id"], employee_id, date_from, date_to
    )


@router.get("/sites", response_model=SiteVisitStatsResponse)
async def get_site_visit_stats(
    date_from: datetime = Query(...),
    date_to: datetime = Query(...),
    site_id: Optional[int] = Query(None),
    current_user: dict = Depends(require_role(SUPERVISOR_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await TripAnalyticsService.get_site_visit_stats(
        db, current_user["organization_id"], date_from, date_to, site_id=site_id
    )


@router.get("/summary", response_model=TripsSummary)
async def get_trips_summary(
    date_from: datetime = Query(...),
    date_to: datetime = Query(...),
    current_user: dict = Depends(require_role(SUPERVISOR_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await TripAnalyticsService.get_trips_summary(
        db, current_user["organization_id"], date_from, date_to
    )
