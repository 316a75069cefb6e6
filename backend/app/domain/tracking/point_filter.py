"""
GPS point filter.

Accepts or rejects each raw point, computes the incremental distance,
raises GPS_JUMP / SPEED_VIOLATION anomalies and hands accepted points to the
stop detector. Rejected points are stored too, flagged with a reason.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import InvalidStateError, ResourceNotFoundError
from backend.app.db.session import as_utc, utcnow
from backend.app.domain.tracking.anomalies import create_anomaly
from backend.app.domain.tracking.geometry import haversine_meters, implied_speed_kmh, mps_to_kmh
from backend.app.domain.tracking.locks import select_trip_for_update, trip_lock
from backend.app.domain.tracking.stop_detector import detect_stop
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import AnomalySeverity, PointFilterReason, TripStatus
from backend.app.models.trip_point import TripPoint
from backend.app.schemas.anomaly import GeoPoint, GpsJumpDetails, SpeedViolationDetails
from backend.app.schemas.trip_tracking import PointRecord

logger = logging.getLogger(__name__)


@dataclass
class PointResult:
    point_id: int
    rejected: bool
    reason: Optional[PointFilterReason] = None


async def _load_active_trip(db: AsyncSession, trip_id: int) -> Trip:
    trip = await select_trip_for_update(db, trip_id)
    if trip is None:
        raise ResourceNotFoundError("Trip", trip_id)
    if trip.status != TripStatus.ACTIVE:
        raise InvalidStateError(
            "Trip is not active",
            details={"trip_id": trip_id, "status": trip.status.value},
        )
    return trip


async def get_last_accepted_point(db: AsyncSession, trip_id: int) -> Optional[TripPoint]:
    result = await db.execute(
        select(TripPoint)
        .where(TripPoint.trip_id == trip_id, TripPoint.is_filtered.is_(False))
        .order_by(desc(TripPoint.recorded_at), desc(TripPoint.id))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _ingest_point(db: AsyncSession, trip: Trip, record: PointRecord) -> PointResult:
    """Run one point through the filter pipeline inside the caller's transaction."""
    recorded_at = as_utc(record.recorded_at) if record.recorded_at else utcnow()

    reason = None
    distance = 0.0

    # 1. Accuracy gate
    if record.accuracy_meters is not None and record.accuracy_meters > settings.min_gps_accuracy_meters:
        reason = PointFilterReason.LOW_ACCURACY
        logger.debug(
            "Point rejected on trip %s: accuracy %.1fm", trip.id, record.accuracy_meters
        )

    if reason is None:
        previous = await get_last_accepted_point(db, trip.id)

        if previous is None:
            if trip.start_latitude is None:
                trip.start_latitude = record.latitude
                trip.start_longitude = record.longitude
        else:
            # 2. GPS jump check
            distance = haversine_meters(
                previous.latitude, previous.longitude, record.latitude, record.longitude
            )
            if distance > settings.gps_jump_distance_meters:
                elapsed = (recorded_at - as_utc(previous.recorded_at)).total_seconds()
                speed = implied_speed_kmh(distance, elapsed)
                if speed > settings.max_speed_kmh * settings.gps_jump_speed_factor:
                    reason = PointFilterReason.GPS_JUMP
                    await create_anomaly(
                        db,
                        trip,
                        AnomalySeverity.INFO,
                        GpsJumpDetails(
                            previous_point=GeoPoint(lat=previous.latitude, lng=previous.longitude),
                            distance_meters=round(distance, 2),
                            time_seconds=elapsed,
                        ),
                        latitude=record.latitude,
                        longitude=record.longitude,
                    )

        # 3. Reported speed check (point stays accepted)
        if reason is None and record.speed_mps:
            speed_kmh = mps_to_kmh(record.speed_mps)
            if speed_kmh > settings.max_speed_kmh:
                await create_anomaly(
                    db,
                    trip,
                    AnomalySeverity.WARNING,
                    SpeedViolationDetails(
                        speed_kmh=round(speed_kmh),
                        max_allowed_kmh=settings.max_speed_kmh,
                    ),
                    latitude=record.latitude,
                    longitude=record.longitude,
                )

    accepted = reason is None
    point = TripPoint(
        trip_id=trip.id,
        latitude=record.latitude,
        longitude=record.longitude,
        accuracy_meters=record.accuracy_meters,
        speed_mps=record.speed_mps,
        heading=record.heading,
        altitude=record.altitude,
        distance_from_prev_meters=round(distance, 2) if accepted else 0,
        is_filtered=not accepted,
        filter_reason=reason,
        recorded_at=recorded_at,
    )
    db.add(point)

    trip.total_points = (trip.total_points or 0) + 1
    trip.last_location_update = utcnow()
    await db.flush()

    if accepted:
        await detect_stop(db, trip)
    else:
        logger.info("Point %s on trip %s rejected: %s", point.id, trip.id, reason.value)

    return PointResult(point_id=point.id, rejected=not accepted, reason=reason)


async def add_point(db: AsyncSession, trip_id: int, record: PointRecord) -> PointResult:
    """
    Ingest one GPS point.

    Raises:
        ResourceNotFoundError: unknown trip
        InvalidStateError: trip is not ACTIVE
    """
    async with trip_lock(trip_id):
        trip = await _load_active_trip(db, trip_id)
        result = await _ingest_point(db, trip, record)
        await db.commit()
    return result


async def add_points_batch(db: AsyncSession, trip_id: int, records: List[PointRecord]) -> List[PointResult]:
    """
    Ingest points buffered offline, in submission order, under one lock and
    one transaction. Returns one result per submitted point.

    The lock timeout grows with the batch size.
    """
    lock_timeout = (
        settings.trip_lock_timeout_seconds
        + len(records) * settings.trip_lock_batch_seconds_per_point
    )
    async with trip_lock(trip_id, timeout=lock_timeout):
        trip = await _load_active_trip(db, trip_id)
        results = [await _ingest_point(db, trip, record) for record in records]
        await db.commit()

    logger.info(
        "Batch of %d points on trip %s: %d rejected",
        len(results), trip_id, sum(1 for r in results if r.rejected),
    )
    return results
