"""
Trip Lifecycle API Endpoints.

Employees start, end and cancel trips; supervisors list and inspect them.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Body, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.enums import FIELD_ROLES
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import TripStatus, TripTaskType
from backend.app.schemas.trip import (
    TripStart, TripEnd, TripCancel, TripResponse, TripListResponse
)
from backend.app.schemas.task_link import TaskLinkCreate, TaskLinkComplete, TaskLinkResponse
from backend.app.schemas.anomaly import AnomalyResponse
from backend.app.core.guards import require_role, is_supervisor, OrganizationGuard
from backend.app.domain.tracking import trip_lifecycle, task_links, anomalies
from backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/trips", tags=["Trips"])

organization_guard = OrganizationGuard()


async def get_trip_for_user(db: AsyncSession, trip_id: int, current_user: dict) -> Trip:
    """Load a trip and check the caller may act on it."""
    trip = await trip_lifecycle.get_trip(db, trip_id)
    organization_guard.enforce(trip.organization_id, current_user, "trip")
    organization_guard.enforce_self_or_supervisor(trip.employee_id, current_user, "trip")
    return trip


@router.post("/start", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def start_trip(
    data: TripStart = Body(...),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """
    Start a trip.

    Supervisors may pass ``employee_id`` to start a trip for an employee;
    everybody else starts their own.
    """
    employee_id = current_user["user_id"]
    if data.employee_id is not None and is_supervisor(current_user):
        employee_id = data.employee_id

    trip = await trip_lifecycle.start_trip(
        db,
        organization_id=current_user["organization_id"],
        employee_id=employee_id,
        data=data,
        actor_id=current_user["user_id"],
    )

    await log_event(
        db=db,
        action=AuditAction.TRIP_STARTED,
        organization_id=trip.organization_id,
        actor_id=current_user["user_id"],
        entity_type="trip",
        entity_id=trip.id,
        metadata={"employee_id": employee_id, "vehicle_id": trip.vehicle_id, "task_ids": data.task_ids}
    )

    return trip


@router.get("/active", response_model=Optional[TripResponse])
async def get_my_active_trip(
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Caller's ACTIVE trip, or null."""
    return await trip_lifecycle.get_active_trip(db, current_user["user_id"])


@router.get("", response_model=TripListResponse)
async def list_trips(
    employee_id: Optional[int] = Query(None),
    vehicle_id: Optional[int] = Query(None),
    status_filter: Optional[TripStatus] = Query(None, alias="status"),
    task_type: Optional[TripTaskType] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(trip_lifecycle.DEFAULT_PAGE_SIZE, ge=1, le=100),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """
    List the organization's trips, newest first.

    Operators only see their own trips.
    """
    if not is_supervisor(current_user):
        employee_id = current_user["user_id"]

    trips, total = await trip_lifecycle.list_trips(
        db,
        organization_id=current_user["organization_id"],
        employee_id=employee_id,
        vehicle_id=vehicle_id,
        status=status_filter,
        task_type=task_type,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )

    return TripListResponse(
        trips=[TripResponse.model_validate(t) for t in trips],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await get_trip_for_user(db, trip_id, current_user)


@router.post("/{trip_id}/end", response_model=TripResponse)
async def end_trip(
    trip_id: int = Path(..., description="Trip ID"),
    data: Optional[TripEnd] = Body(None),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """
    End a trip.

    Computes distance, visited sites and end coordinates, closes the open
    stop and checks the odometer delta against the GPS distance.
    """
    await get_trip_for_user(db, trip_id, current_user)

    data = data or TripEnd()
    trip = await trip_lifecycle.end_trip(db, trip_id, data, actor_id=current_user["user_id"])

    await log_event(
        db=db,
        action=AuditAction.TRIP_ENDED,
        organization_id=trip.organization_id,
        actor_id=current_user["user_id"],
        entity_type="trip",
        entity_id=trip.id,
        metadata={
            "calculated_distance_meters": trip.calculated_distance_meters,
            "end_odometer": trip.end_odometer,
            "total_anomalies": trip.total_anomalies,
        }
    )

    return trip


@router.post("/{trip_id}/cancel", response_model=TripResponse)
async def cancel_trip(
    trip_id: int = Path(..., description="Trip ID"),
    data: Optional[TripCancel] = Body(None),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    await get_trip_for_user(db, trip_id, current_user)

    data = data or TripCancel()
    trip = await trip_lifecycle.cancel_trip(db, trip_id, data.reason, actor_id=current_user["user_id"])

    await log_event(
        db=db,
        action=AuditAction.TRIP_CANCELLED,
        organization_id=trip.organization_id,
        actor_id=current_user["user_id"],
        entity_type="trip",
        entity_id=trip.id,
        metadata={"reason": data.reason}
    )

    return trip


@router.get("/{trip_id}/anomalies", response_model=List[AnomalyResponse])
async def get_trip_anomalies(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    await get_trip_for_user(db, trip_id, current_user)
    return await anomalies.list_trip_anomalies(db, trip_id)


# Work items linked to the trip

@router.get("/{trip_id}/tasks", response_model=List[TaskLinkResponse])
async def list_trip_tasks(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    await get_trip_for_user(db, trip_id, current_user)
    return await task_links.list_trip_tasks(db, trip_id)


@router.post("/{trip_id}/tasks", response_model=TaskLinkResponse, status_code=status.HTTP_201_CREATED)
async def link_task(
    trip_id: int = Path(..., description="Trip ID"),
    data: TaskLinkCreate = Body(...),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    trip = await get_trip_for_user(db, trip_id, current_user)

    link = await task_links.link_task(db, trip_id, data.task_id, actor_id=current_user["user_id"])

    await log_event(
        db=db,
        action=AuditAction.TASK_LINKED,
        organization_id=trip.organization_id,
        actor_id=current_user["user_id"],
        entity_type="trip",
        entity_id=trip_id,
        metadata={"task_id": data.task_id}
    )

    return link


@router.post("/{trip_id}/tasks/{task_id}/complete", response_model=TaskLinkResponse)
async def complete_linked_task(
    trip_id: int = Path(..., description="Trip ID"),
    task_id: int = Path(..., description="Work item ID"),
    data: Optional[TaskLinkComplete] = Body(None),
    current_user: dict = Depends(require_role(FIELD_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    trip = await get_trip_for_user(db, trip_id, current_user)

    data = data or TaskLinkComplete()
    link = await task_links.complete_linked_task(
        db, trip_id, task_id, notes=data.notes, actor_id=current_user["user_id"]
    )

    await log_event(
        db=db,
        action=AuditAction.TASK_COMPLETED,
        organization_id=trip.organization_id,
        actor_id=current_user["user_id"],
        entity_type="trip",
        entity_id=trip_id,
        metadata={"task_id": task_id}
    )

    return link
