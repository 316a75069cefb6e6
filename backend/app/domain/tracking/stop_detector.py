"""
Stop detector.

After every accepted point, looks at a trailing window of accepted points
anchored at the newest point's recorded time. If the whole window sits
within the stop radius a stop is opened; any point outside the radius
closes the open stop.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.db.session import as_utc
from backend.app.domain.tracking.geofencing import find_nearest_site
from backend.app.domain.tracking.geometry import haversine_meters
from backend.app.domain.tracking.task_links import verify_tasks_at_site
from backend.app.models.trip import Trip
from backend.app.models.trip_point import TripPoint
from backend.app.models.trip_stop import TripStop

logger = logging.getLogger(__name__)


async def get_open_stop(db: AsyncSession, trip_id: int) -> Optional[TripStop]:
    result = await db.execute(
        select(TripStop).where(TripStop.trip_id == trip_id, TripStop.ended_at.is_(None))
    )
    return result.scalar_one_or_none()


def close_stop(stop: TripStop, ended_at: datetime) -> None:
    """Close a stop and compute its duration."""
    stop.ended_at = ended_at
    stop.duration_seconds = max(0, round((ended_at - as_utc(stop.started_at)).total_seconds()))


async def close_open_stop(db: AsyncSession, trip_id: int, ended_at: datetime) -> Optional[TripStop]:
    stop = await get_open_stop(db, trip_id)
    if stop is not None:
        close_stop(stop, ended_at)
        logger.info("Stop %s on trip %s closed after %ss", stop.id, trip_id, stop.duration_seconds)
    return stop


async def detect_stop(db: AsyncSession, trip: Trip) -> Optional[TripStop]:
    """
    Update the trip's current stop from its most recent accepted points.

    Runs inside the caller's transaction, with the trip lock held and the
    newest point already flushed. Returns the stop opened by this call, if any.
    """
    result = await db.execute(
        select(TripPoint)
        .where(TripPoint.trip_id == trip.id, TripPoint.is_filtered.is_(False))
        .order_by(desc(TripPoint.recorded_at), desc(TripPoint.id))
        .limit(settings.stop_window_max_points)
    )
    recent = result.scalars().all()
    if len(recent) < 2:
        return None

    newest = recent[0]
    newest_at = as_utc(newest.recorded_at)
    window_start = newest_at - timedelta(seconds=settings.stop_min_duration_seconds)
    window = [p for p in recent if as_utc(p.recorded_at) >= window_start]

    if len(window) < 2:
        return None

    moved = any(
        haversine_meters(p.latitude, p.longitude, newest.latitude, newest.longitude)
        > settings.stop_detection_radius_meters
        for p in window
    )
    if moved:
        await close_open_stop(db, trip.id, newest_at)
        return None

    if await get_open_stop(db, trip.id) is not None:
        return None

    oldest = window[-1]
    stop = TripStop(
        trip_id=trip.id,
        latitude=oldest.latitude,
        longitude=oldest.longitude,
        started_at=as_utc(oldest.recorded_at),
        is_verified=False,
    )

    match = await find_nearest_site(db, trip.organization_id, oldest.latitude, oldest.longitude)
    if match is not None:
        stop.site_id = match.site_id
        stop.site_name = match.site_name
        stop.site_address = match.site_address
        stop.distance_to_site_meters = match.distance_meters
        stop.is_verified = match.is_within_radius

    db.add(stop)
    trip.total_stops = (trip.total_stops or 0) + 1
    await db.flush()

    logger.info(
        "Stop %s opened on trip %s (site=%s, verified=%s)",
        stop.id, trip.id, stop.site_id, stop.is_verified,
    )

    if stop.is_verified and stop.site_id:
        await verify_tasks_at_site(db, trip.id, stop.site_id)

    return stop
