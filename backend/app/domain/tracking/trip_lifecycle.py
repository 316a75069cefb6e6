"""
Trip lifecycle.

Start, end and cancel trips, compute final statistics and the mileage
discrepancy check, and answer trip queries.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, func, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    BadRequestError,
    ConflictError,
    InvalidStateError,
    ResourceNotFoundError,
)
from backend.app.db.session import utcnow
from backend.app.domain.tracking.anomalies import create_anomaly
from backend.app.domain.tracking.locks import select_trip_for_update, trip_lock
from backend.app.domain.tracking.stop_detector import close_open_stop
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import (
    TERMINAL_TRIP_STATUSES, AnomalySeverity, TripStatus, TripTaskLinkStatus, TripTaskType,
)
from backend.app.models.trip_point import TripPoint
from backend.app.models.trip_stop import TripStop
from backend.app.models.trip_task_link import TripTaskLink
from backend.app.models.vehicle import Vehicle
from backend.app.schemas.anomaly import MileageDiscrepancyDetails
from backend.app.schemas.trip import TripEnd, TripStart

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


def _require_active(trip: Trip, action: str) -> None:
    if trip.status in TERMINAL_TRIP_STATUSES:
        raise InvalidStateError(
            f"Only active trips can be {action}",
            details={"trip_id": trip.id, "status": trip.status.value},
        )


async def _load_trip_locked(db: AsyncSession, trip_id: int) -> Trip:
    trip = await select_trip_for_update(db, trip_id)
    if trip is None:
        raise ResourceNotFoundError("Trip", trip_id)
    return trip


async def get_trip(db: AsyncSession, trip_id: int) -> Trip:
    """Fetch a non-removed trip or raise ResourceNotFoundError."""
    result = await db.execute(
        select(Trip).where(Trip.id == trip_id, Trip.deleted_at.is_(None))
    )
    trip = result.scalar_one_or_none()
    if trip is None:
        raise ResourceNotFoundError("Trip", trip_id)
    return trip


async def get_active_trip(db: AsyncSession, employee_id: int) -> Optional[Trip]:
    result = await db.execute(
        select(Trip).where(
            Trip.employee_id == employee_id,
            Trip.status == TripStatus.ACTIVE,
            Trip.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def start_trip(
    db: AsyncSession,
    organization_id: int,
    employee_id: int,
    data: TripStart,
    actor_id: Optional[int] = None,
) -> Trip:
    """
    Start a trip for an employee.

    Raises:
        ConflictError: the employee already has an ACTIVE trip
        BadRequestError: the vehicle does not belong to the organization
    """
    if await get_active_trip(db, employee_id):
        raise ConflictError(
            "Employee already has an active trip. End it before starting a new one.",
            details={"employee_id": employee_id},
        )

    if data.vehicle_id is not None:
        result = await db.execute(
            select(Vehicle).where(
                Vehicle.id == data.vehicle_id,
                Vehicle.organization_id == organization_id,
                Vehicle.deleted_at.is_(None),
            )
        )
        if result.scalar_one_or_none() is None:
            raise BadRequestError(
                "Vehicle not found or does not belong to this organization",
                details={"vehicle_id": data.vehicle_id},
            )

    trip = Trip(
        organization_id=organization_id,
        employee_id=employee_id,
        vehicle_id=data.vehicle_id,
        task_type=data.task_type or TripTaskType.OTHER,
        status=TripStatus.ACTIVE,
        started_at=utcnow(),
        start_odometer=data.start_odometer,
        notes=data.notes,
        created_by_id=actor_id,
    )
    db.add(trip)

    try:
        await db.flush()
    except IntegrityError:
        # Concurrent start won the partial unique index
        await db.rollback()
        raise ConflictError(
            "Employee already has an active trip. End it before starting a new one.",
            details={"employee_id": employee_id},
        )

    for task_id in dict.fromkeys(data.task_ids):
        db.add(TripTaskLink(
            trip_id=trip.id,
            task_id=task_id,
            status=TripTaskLinkStatus.PENDING,
            created_by_id=actor_id,
        ))

    await db.commit()
    await db.refresh(trip)

    logger.info("Trip %s started for employee %s (vehicle=%s)", trip.id, employee_id, trip.vehicle_id)
    return trip


async def end_trip(
    db: AsyncSession,
    trip_id: int,
    data: TripEnd,
    actor_id: Optional[int] = None,
) -> Trip:
    """
    Complete a trip and compute its final statistics.

    Raises:
        ResourceNotFoundError: unknown trip
        InvalidStateError: trip is not ACTIVE
    """
    async with trip_lock(trip_id):
        trip = await _load_trip_locked(db, trip_id)
        _require_active(trip, "ended")

        now = utcnow()

        last_point = (await db.execute(
            select(TripPoint)
            .where(TripPoint.trip_id == trip.id, TripPoint.is_filtered.is_(False))
            .order_by(desc(TripPoint.recorded_at), desc(TripPoint.id))
            .limit(1)
        )).scalar_one_or_none()

        total_meters = (await db.execute(
            select(func.coalesce(func.sum(TripPoint.distance_from_prev_meters), 0))
            .where(TripPoint.trip_id == trip.id, TripPoint.is_filtered.is_(False))
        )).scalar_one()
        total_meters = round(float(total_meters or 0))

        stops = (await db.execute(
            select(TripStop)
            .where(TripStop.trip_id == trip.id)
            .order_by(TripStop.started_at, TripStop.id)
        )).scalars().all()

        verified_sites = [s.site_id for s in stops if s.is_verified and s.site_id]

        await close_open_stop(db, trip.id, now)

        trip.status = TripStatus.COMPLETED
        trip.ended_at = now
        trip.end_odometer = data.end_odometer
        if last_point is not None:
            trip.end_latitude = last_point.latitude
            trip.end_longitude = last_point.longitude
        trip.calculated_distance_meters = total_meters
        trip.visited_sites_count = len({s.site_id for s in stops if s.site_id})
        if verified_sites:
            trip.start_site_id = verified_sites[0]
            trip.end_site_id = verified_sites[-1]
        trip.live_location_active = False
        trip.updated_by_id = actor_id
        if data.notes:
            trip.append_note(data.notes)

        if trip.vehicle_id and data.end_odometer is not None:
            vehicle = await db.get(Vehicle, trip.vehicle_id)
            if vehicle is not None:
                vehicle.current_odometer = data.end_odometer
                vehicle.last_odometer_update = now

        if trip.start_odometer is not None and data.end_odometer is not None:
            reported_km = data.end_odometer - trip.start_odometer
            calculated_km = round(total_meters / 1000)
            difference = abs(reported_km - calculated_km)
            if difference > settings.mileage_threshold_km:
                await create_anomaly(
                    db,
                    trip,
                    AnomalySeverity.WARNING,
                    MileageDiscrepancyDetails(
                        expected_km=calculated_km,
                        actual_km=reported_km,
                        difference_km=difference,
                    ),
                )

        await db.commit()
        await db.refresh(trip)

    logger.info(
        "Trip %s completed: %sm, %s stops, %s anomalies",
        trip.id, trip.calculated_distance_meters, trip.total_stops, trip.total_anomalies,
    )
    return trip


async def cancel_trip(
    db: AsyncSession,
    trip_id: int,
    reason: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> Trip:
    """
    Cancel an ACTIVE trip. No statistics are computed.

    Raises:
        ResourceNotFoundError: unknown trip
        InvalidStateError: trip is not ACTIVE
    """
    async with trip_lock(trip_id):
        trip = await _load_trip_locked(db, trip_id)
        _require_active(trip, "cancelled")

        trip.status = TripStatus.CANCELLED
        trip.ended_at = utcnow()
        trip.live_location_active = False
        trip.updated_by_id = actor_id
        if reason:
            trip.append_note(f"[Cancelled: {reason}]")

        await db.commit()
        await db.refresh(trip)

    logger.info("Trip %s cancelled", trip.id)
    return trip


async def set_live_location(db: AsyncSession, trip_id: int, is_active: bool) -> Trip:
    """Toggle live location sharing. Only ACTIVE trips can start sharing."""
    trip = await get_trip(db, trip_id)
    if is_active:
        _require_active(trip, "shared live")

    trip.live_location_active = is_active
    trip.last_location_update = utcnow()

    await db.commit()
    await db.refresh(trip)
    return trip


async def list_trips(
    db: AsyncSession,
    organization_id: int,
    employee_id: Optional[int] = None,
    vehicle_id: Optional[int] = None,
    status: Optional[TripStatus] = None,
    task_type: Optional[TripTaskType] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Trip], int]:
    """
    Paginated trips of an organization, newest first.

    Returns:
        (trips, total)
    """
    conditions = [Trip.organization_id == organization_id, Trip.deleted_at.is_(None)]

    if employee_id:
        conditions.append(Trip.employee_id == employee_id)
    if vehicle_id:
        conditions.append(Trip.vehicle_id == vehicle_id)
    if status:
        conditions.append(Trip.status == status)
    if task_type:
        conditions.append(Trip.task_type == task_type)
    if date_from:
        conditions.append(Trip.started_at >= date_from)
    if date_to:
        conditions.append(Trip.started_at <= date_to)

    total = (await db.execute(select(func.count(Trip.id)).where(*conditions))).scalar()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(Trip)
        .where(*conditions)
        .order_by(desc(Trip.started_at), desc(Trip.id))
        .offset(offset)
        .limit(page_size)
    )
    return result.scalars().all(), total


async def get_route(db: AsyncSession, trip_id: int) -> List[TripPoint]:
    """Accepted points in recording order."""
    result = await db.execute(
        select(TripPoint)
        .where(TripPoint.trip_id == trip_id, TripPoint.is_filtered.is_(False))
        .order_by(TripPoint.recorded_at, TripPoint.id)
    )
    return result.scalars().all()


async def get_stops(db: AsyncSession, trip_id: int) -> List[TripStop]:
    result = await db.execute(
        select(TripStop)
        .where(TripStop.trip_id == trip_id)
        .order_by(TripStop.started_at, TripStop.id)
    )
    return result.scalars().all()
