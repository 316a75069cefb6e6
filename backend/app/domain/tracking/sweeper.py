"""
Stale-trip sweeper.

Periodic maintenance over ACTIVE trips:

1. auto-close trips that stopped reporting GPS,
2. flag stops that stay open too long away from any service site,
3. report trips that never received an accepted point.

Each trip is handled in its own session and transaction under its trip
lock. A failure is logged, rolled back and written to the dead-letter
queue; the rest of the batch continues. Dead-lettered items are replayed
one at a time with ``retry_dead_letter``.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import timedelta
from typing import Any, Dict, List

from sqlalchemy import select, func, exists
from sqlalchemy.ext.asyncio import async_sessionmaker

from backend.app.core.config import settings
from backend.app.core.exceptions import BadRequestError, InvalidStateError, ResourceNotFoundError
from backend.app.db.session import AsyncSessionLocal, as_utc, utcnow
from backend.app.domain.tracking.anomalies import create_anomaly
from backend.app.domain.tracking.locks import select_trip_for_update, trip_lock
from backend.app.domain.tracking.stop_detector import close_open_stop
from backend.app.domain.tracking.task_links import skip_open_tasks
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.trip import Trip
from backend.app.models.trip_anomaly import TripAnomaly
from backend.app.models.trip_enums import AnomalySeverity, AnomalyType, TripStatus
from backend.app.models.trip_point import TripPoint
from backend.app.models.trip_stop import TripStop
from backend.app.schemas.anomaly import LongStopDetails, MissedLocationDetails
from backend.app.services.audit import AuditAction, log_event

logger = logging.getLogger(__name__)

TASK_AUTO_CLOSE = "sweeper.auto_close_trip"
TASK_LONG_STOP = "sweeper.flag_long_stop"
TASK_EMPTY_TRIP = "sweeper.empty_trip"


@dataclass
class SweepReport:
    auto_closed: int = 0
    long_stops_flagged: int = 0
    empty_trips: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


async def _record_failure(
    session_factory: async_sessionmaker, task_name: str, payload: Dict[str, Any], error: Exception
) -> None:
    """Write a failed work item to the dead-letter queue."""
    try:
        async with session_factory() as db:
            db.add(DeadLetterQueue(
                task_name=task_name,
                error_message=f"{type(error).__name__}: {error}",
                payload=payload,
                status=DLQStatus.FAILED,
            ))
            await db.commit()
    except Exception:
        logger.exception("Could not record %s failure for %s in DLQ", task_name, payload)


# --- 1. auto-close ----------------------------------------------------------

async def _find_stale_trip_ids(session_factory: async_sessionmaker, cutoff) -> List[int]:
    async with session_factory() as db:
        result = await db.execute(
            select(Trip.id).where(
                Trip.status == TripStatus.ACTIVE,
                Trip.deleted_at.is_(None),
                func.coalesce(Trip.last_location_update, Trip.started_at) < cutoff,
            ).order_by(Trip.id)
        )
        return list(result.scalars().all())


async def auto_close_trip(session_factory: async_sessionmaker, trip_id: int, cutoff) -> bool:
    """
    Auto-close one stale trip. Returns False when the trip no longer
    qualifies (ended meanwhile or received a fresh point).
    """
    async with session_factory() as db:
        async with trip_lock(trip_id):
            trip = await select_trip_for_update(db, trip_id)
            if trip is None or trip.status != TripStatus.ACTIVE:
                return False
            last_seen = as_utc(trip.last_location_update or trip.started_at)
            if last_seen >= cutoff:
                return False

            now = utcnow()
            trip.status = TripStatus.AUTO_CLOSED
            trip.ended_at = now
            trip.live_location_active = False
            trip.append_note(
                f"[Auto-closed: no GPS update for {settings.auto_close_after_hours}h]"
            )

            await close_open_stop(db, trip.id, now)
            skipped = await skip_open_tasks(db, trip.id, "Skipped: trip auto-closed")

            await db.commit()

        await log_event(
            db,
            AuditAction.TRIP_AUTO_CLOSED,
            organization_id=trip.organization_id,
            entity_type="trip",
            entity_id=trip.id,
            metadata={"last_seen": last_seen.isoformat(), "skipped_tasks": skipped},
        )

    logger.warning("Trip %s auto-closed (last seen %s)", trip_id, last_seen.isoformat())
    return True


# --- 2. long stops ----------------------------------------------------------

async def _find_long_stop_ids(session_factory: async_sessionmaker, cutoff) -> List[tuple]:
    async with session_factory() as db:
        result = await db.execute(
            select(TripStop.id, TripStop.trip_id)
            .join(Trip, Trip.id == TripStop.trip_id)
            .where(
                Trip.status == TripStatus.ACTIVE,
                Trip.deleted_at.is_(None),
                TripStop.ended_at.is_(None),
                TripStop.site_id.is_(None),
                TripStop.notification_sent.is_(False),
                TripStop.started_at < cutoff,
            ).order_by(TripStop.id)
        )
        return [tuple(row) for row in result.all()]


async def flag_long_stop(session_factory: async_sessionmaker, stop_id: int, trip_id: int) -> bool:
    """Raise LONG_STOP for one open, unmatched stop. At most once per stop."""
    async with session_factory() as db:
        async with trip_lock(trip_id):
            trip = await select_trip_for_update(db, trip_id)
            if trip is None or trip.status != TripStatus.ACTIVE:
                return False

            result = await db.execute(
                select(TripStop)
                .where(TripStop.id == stop_id)
                .execution_options(populate_existing=True)
            )
            stop = result.scalar_one_or_none()
            if stop is None or stop.ended_at is not None or stop.notification_sent:
                return False

            duration = utcnow() - as_utc(stop.started_at)
            await create_anomaly(
                db,
                trip,
                AnomalySeverity.WARNING,
                LongStopDetails(
                    stop_id=stop.id,
                    duration_minutes=int(duration.total_seconds() // 60),
                    threshold_minutes=settings.long_stop_threshold_minutes,
                ),
                latitude=stop.latitude,
                longitude=stop.longitude,
            )
            stop.is_anomaly = True
            stop.notification_sent = True

            await db.commit()

    return True


# --- 3. empty trips ---------------------------------------------------------

async def _find_empty_trip_ids(session_factory: async_sessionmaker, cutoff) -> List[int]:
    has_points = exists().where(
        TripPoint.trip_id == Trip.id, TripPoint.is_filtered.is_(False)
    )
    async with session_factory() as db:
        result = await db.execute(
            select(Trip.id).where(
                Trip.status == TripStatus.ACTIVE,
                Trip.deleted_at.is_(None),
                Trip.started_at < cutoff,
                ~has_points,
            ).order_by(Trip.id)
        )
        return list(result.scalars().all())


async def flag_empty_trip(session_factory: async_sessionmaker, trip_id: int) -> bool:
    """Raise MISSED_LOCATION for a trip without accepted points, once per trip."""
    async with session_factory() as db:
        async with trip_lock(trip_id):
            trip = await select_trip_for_update(db, trip_id)
            if trip is None or trip.status != TripStatus.ACTIVE:
                return False

            already_flagged = (await db.execute(
                select(func.count(TripAnomaly.id)).where(
                    TripAnomaly.trip_id == trip_id,
                    TripAnomaly.type == AnomalyType.MISSED_LOCATION,
                )
            )).scalar()
            if already_flagged:
                return False

            minutes = int((utcnow() - as_utc(trip.started_at)).total_seconds() // 60)
            await create_anomaly(
                db,
                trip,
                AnomalySeverity.WARNING,
                MissedLocationDetails(
                    minutes_since_start=minutes,
                    reason="No GPS points received since trip start",
                ),
            )
            await db.commit()

    return True


async def run_sweep(session_factory: async_sessionmaker = AsyncSessionLocal) -> SweepReport:
    """Run one sweeper pass and return its counts."""
    report = SweepReport()
    now = utcnow()

    stale_cutoff = now - timedelta(hours=settings.auto_close_after_hours)
    for trip_id in await _find_stale_trip_ids(session_factory, stale_cutoff):
        try:
            if await auto_close_trip(session_factory, trip_id, stale_cutoff):
                report.auto_closed += 1
        except Exception as e:
            report.failed += 1
            logger.exception("Auto-close failed for trip %s", trip_id)
            await _record_failure(session_factory, TASK_AUTO_CLOSE, {"trip_id": trip_id}, e)

    long_stop_cutoff = now - timedelta(minutes=settings.long_stop_threshold_minutes)
    for stop_id, trip_id in await _find_long_stop_ids(session_factory, long_stop_cutoff):
        try:
            if await flag_long_stop(session_factory, stop_id, trip_id):
                report.long_stops_flagged += 1
        except Exception as e:
            report.failed += 1
            logger.exception("Long-stop check failed for stop %s", stop_id)
            await _record_failure(
                session_factory, TASK_LONG_STOP, {"stop_id": stop_id, "trip_id": trip_id}, e
            )

    empty_cutoff = now - timedelta(minutes=settings.empty_trip_warning_minutes)
    for trip_id in await _find_empty_trip_ids(session_factory, empty_cutoff):
        report.empty_trips += 1
        logger.warning(
            "Trip %s active for over %s minutes without GPS points",
            trip_id, settings.empty_trip_warning_minutes,
        )
        if not settings.empty_trip_raises_anomaly:
            continue
        try:
            await flag_empty_trip(session_factory, trip_id)
        except Exception as e:
            report.failed += 1
            logger.exception("Empty-trip check failed for trip %s", trip_id)
            await _record_failure(session_factory, TASK_EMPTY_TRIP, {"trip_id": trip_id}, e)

    logger.info("Sweep finished: %s", report.as_dict())
    return report


# --- dead-letter replay -----------------------------------------------------

RETRYABLE_TASKS = (TASK_AUTO_CLOSE, TASK_LONG_STOP, TASK_EMPTY_TRIP)


async def _replay(session_factory: async_sessionmaker, task_name: str, payload: Dict[str, Any]) -> bool:
    if task_name == TASK_AUTO_CLOSE:
        cutoff = utcnow() - timedelta(hours=settings.auto_close_after_hours)
        return await auto_close_trip(session_factory, payload["trip_id"], cutoff)
    if task_name == TASK_LONG_STOP:
        return await flag_long_stop(session_factory, payload["stop_id"], payload["trip_id"])
    return await flag_empty_trip(session_factory, payload["trip_id"])


async def retry_dead_letter(session_factory: async_sessionmaker, dlq_id: int) -> DeadLetterQueue:
    """
    Re-run one failed sweeper item with its stored payload.

    The item ends PROCESSED when the replay succeeds, including when the
    trip no longer needs the work. A failing replay stores the new error and
    goes back to FAILED, or to ARCHIVED once ``dlq_max_retries`` is reached.

    Raises:
        ResourceNotFoundError: unknown item
        InvalidStateError: item is not FAILED
        BadRequestError: item was not produced by the sweeper
    """
    async with session_factory() as db:
        item = await db.get(DeadLetterQueue, dlq_id)
        if item is None:
            raise ResourceNotFoundError("DLQ item", dlq_id)
        if item.status != DLQStatus.FAILED:
            raise InvalidStateError(
                "Only failed items can be retried",
                details={"dlq_id": dlq_id, "status": item.status.value},
            )
        if item.task_name not in RETRYABLE_TASKS:
            raise BadRequestError(
                "Task cannot be retried", details={"dlq_id": dlq_id, "task_name": item.task_name}
            )

        item.status = DLQStatus.RETRYING
        item.retry_count = (item.retry_count or 0) + 1
        item.last_retry_at = utcnow()
        await db.commit()
        task_name, payload = item.task_name, dict(item.payload or {})

    error = None
    try:
        changed = await _replay(session_factory, task_name, payload)
        logger.info("DLQ item %s replayed (%s, changed=%s)", dlq_id, task_name, changed)
    except Exception as e:
        logger.exception("Replay of DLQ item %s failed", dlq_id)
        error = e

    async with session_factory() as db:
        item = await db.get(DeadLetterQueue, dlq_id)
        if error is None:
            item.status = DLQStatus.PROCESSED
        else:
            item.error_message = f"{type(error).__name__}: {error}"
            item.status = (
                DLQStatus.ARCHIVED if item.retry_count >= settings.dlq_max_retries else DLQStatus.FAILED
            )
        await db.commit()
        await db.refresh(item)
        return item


async def sweeper_loop(session_factory: async_sessionmaker = AsyncSessionLocal) -> None:
    """Background task started from the application lifespan."""
    interval = settings.sweeper_interval_minutes * 60
    logger.info("Stale-trip sweeper started (every %s min)", settings.sweeper_interval_minutes)
    while True:
        try:
            await run_sweep(session_factory)
        except Exception:
            logger.exception("Sweeper pass failed")
        await asyncio.sleep(interval)
