"""
Per-trip serialization.

Every mutation of one trip (point ingestion, end, cancel, auto-close) runs
inside ``trip_lock(trip_id)``. The Redis lock serializes requests across
workers; on PostgreSQL the trip row is additionally locked with
``SELECT ... FOR UPDATE``. Different trips never share a lock.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from redis.exceptions import LockError, RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import ConflictError
from backend.app.core.redis_client import get_redis
from backend.app.models.trip import Trip

logger = logging.getLogger(__name__)

TRIP_LOCK_PREFIX = "trip-lock:"


@asynccontextmanager
async def trip_lock(trip_id: int, timeout: Optional[float] = None):
    """
    Hold the distributed lock for one trip.

    ``timeout`` overrides ``trip_lock_timeout_seconds`` for work that holds
    the lock longer than one request, such as a large batch.

    Raises:
        ConflictError: the lock could not be acquired within the blocking timeout
    """
    redis = await get_redis()
    lock = redis.lock(
        f"{TRIP_LOCK_PREFIX}{trip_id}",
        timeout=timeout or settings.trip_lock_timeout_seconds,
        blocking_timeout=settings.trip_lock_blocking_timeout_seconds,
    )

    try:
        acquired = await lock.acquire()
    except LockError as e:
        raise ConflictError("Trip is busy, retry later", details={"trip_id": trip_id}) from e
    except RedisError as e:
        # Row lock still serializes writers on PostgreSQL
        logger.warning("Trip lock unavailable for trip %s, continuing without it: %s", trip_id, e)
        acquired = None

    if acquired is False:
        raise ConflictError("Trip is busy, retry later", details={"trip_id": trip_id})

    try:
        yield
    finally:
        if acquired:
            try:
                await lock.release()
            except (LockError, RedisError) as e:
                logger.warning("Trip lock for trip %s expired before release: %s", trip_id, e)


async def select_trip_for_update(db: AsyncSession, trip_id: int) -> Optional[Trip]:
    """
    Load a non-removed trip with a row lock, refreshing any stale copy in the session.

    SQLite ignores FOR UPDATE.
    """
    result = await db.execute(
        select(Trip)
        .where(Trip.id == trip_id, Trip.deleted_at.is_(None))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
