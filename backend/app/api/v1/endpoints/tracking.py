"""
GPS Tracking API Endpoints.

Devices push GPS points for the ACTIVE trip; route and stops are read back
for maps and review.
"""

from typing import List

from fastapi import APIRouter, Depends, Path, Body
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.enums import FIELD_ROLES
from backend.app.schemas.trip import TripResponse, TripStopResponse
from backend.app.schemas.trip_tracking import (
    PointRecord, PointBatch, PointRecordResponse, BatchResponse,
    TripPointResponse, LiveLocationUpdate
)
from backend.app.core.guards import require_role
from backend.app.domain.tracking import point_filter, trip_lifecycle
from backend.app.api.v1.endpoints.trips import get_trip_for_user

router = APIRouter(prefix="/trips", tags=["Trips - GPS Tracking"])


@router.post("/{trip_id}/points", response_model=PointRecordResponse)
async def add_point(
    trip_id: int = Path(..., description="Trip ID"),
    point: PointRecord = Body(...),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """
    Record one GPS point.

    Noisy points are stored but flagged ``rejected``; they are not an error.
    """
    await get_trip_for_user(db, trip_id, current_user)

    result = await point_filter.add_point(db, trip_id, point)

    return PointRecordResponse(point_id=result.point_id, rejected=result.rejected, reason=result.reason)


@router.post("/{trip_id}/points/batch", response_model=BatchResponse)
async def add_points_batch(
    trip_id: int = Path(..., description="Trip ID"),
    batch: PointBatch = Body(...),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Record points buffered on the device while offline, in recording order."""
    await get_trip_for_user(db, trip_id, current_user)

    results = await point_filter.add_points_batch(db, trip_id, batch.points)

    rejected = sum(1 for r in results if r.rejected)
    return BatchResponse(
        trip_id=trip_id,
        results=[
            PointRecordResponse(point_id=r.point_id, rejected=r.rejected, reason=r.reason)
            for r in results
        ],
        accepted=len(results) - rejected,
        rejected=rejected
    )


@router.patch("/{trip_id}/live-location", response_model=TripResponse)
async def update_live_location(
    trip_id: int = Path(..., description="Trip ID"),
    data: LiveLocationUpdate = Body(...),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    await get_trip_for_user(db, trip_id, current_user)
    return await trip_lifecycle.set_live_location(db, trip_id, data.is_active)


@router.get("/{trip_id}/route", response_model=List[TripPointResponse])
async def get_trip_route(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Accepted points of the trip in recording order."""
    await get_trip_for_user(db, trip_id, current_user)
    return await trip_lifecycle.get_route(db, trip_id)


@router.get("/{trip_id}/stops", response_model=List[TripStopResponse])
async def get_trip_stops(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    await get_trip_for_user(db, trip_id, current_user)
    return await trip_lifecycle.get_stops(db, trip_id)
