"""
Task link verifier.

Links work items to trips and marks them in progress when the employee is
seen stopping at the work item's site.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from backend.app.db.session import utcnow
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import TripTaskLinkStatus
from backend.app.models.trip_task_link import TripTaskLink
from backend.app.models.work_item import WorkItem

logger = logging.getLogger(__name__)

OPEN_LINK_STATUSES = (TripTaskLinkStatus.PENDING, TripTaskLinkStatus.IN_PROGRESS)


async def _get_link(db: AsyncSession, trip_id: int, task_id: int) -> Optional[TripTaskLink]:
    result = await db.execute(
        select(TripTaskLink).where(
            TripTaskLink.trip_id == trip_id,
            TripTaskLink.task_id == task_id,
            TripTaskLink.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def link_task(
    db: AsyncSession, trip_id: int, task_id: int, actor_id: Optional[int] = None
) -> TripTaskLink:
    """
    Link a work item to a trip as PENDING.

    Raises:
        ResourceNotFoundError: unknown trip
        ConflictError: the work item is already linked to the trip
    """
    trip = await db.get(Trip, trip_id)
    if trip is None or trip.deleted_at is not None:
        raise ResourceNotFoundError("Trip", trip_id)

    if await _get_link(db, trip_id, task_id):
        raise ConflictError(
            "Task is already linked to this trip",
            details={"trip_id": trip_id, "task_id": task_id},
        )

    link = TripTaskLink(
        trip_id=trip_id,
        task_id=task_id,
        status=TripTaskLinkStatus.PENDING,
        created_by_id=actor_id,
    )
    db.add(link)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(
            "Task is already linked to this trip",
            details={"trip_id": trip_id, "task_id": task_id},
        )

    await db.refresh(link)
    return link


async def complete_linked_task(
    db: AsyncSession,
    trip_id: int,
    task_id: int,
    notes: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> TripTaskLink:
    """Mark a linked work item as COMPLETED."""
    link = await _get_link(db, trip_id, task_id)
    if link is None:
        raise ResourceNotFoundError("Task link", message="Task link not found")

    link.status = TripTaskLinkStatus.COMPLETED
    link.completed_at = utcnow()
    link.notes = notes
    link.updated_by_id = actor_id

    await db.commit()
    await db.refresh(link)
    return link


async def list_trip_tasks(db: AsyncSession, trip_id: int) -> List[TripTaskLink]:
    result = await db.execute(
        select(TripTaskLink)
        .where(TripTaskLink.trip_id == trip_id, TripTaskLink.deleted_at.is_(None))
        .order_by(TripTaskLink.created_at, TripTaskLink.id)
    )
    return result.scalars().all()


async def verify_tasks_at_site(db: AsyncSession, trip_id: int, site_id: int) -> int:
    """
    Move PENDING links whose work item is bound to ``site_id`` to IN_PROGRESS.

    Runs inside the caller's transaction. Returns the number of links verified.
    """
    result = await db.execute(
        select(TripTaskLink)
        .join(WorkItem, WorkItem.id == TripTaskLink.task_id)
        .where(
            TripTaskLink.trip_id == trip_id,
            TripTaskLink.status == TripTaskLinkStatus.PENDING,
            TripTaskLink.deleted_at.is_(None),
            WorkItem.site_id == site_id,
            WorkItem.deleted_at.is_(None),
        )
    )
    links = result.scalars().all()

    now = utcnow()
    for link in links:
        link.status = TripTaskLinkStatus.IN_PROGRESS
        link.verified_by_gps = True
        link.verified_at = now
        link.started_at = now

    if links:
        logger.info("Verified %d task(s) by GPS at site %s on trip %s", len(links), site_id, trip_id)
    return len(links)


async def skip_open_tasks(db: AsyncSession, trip_id: int, note: str) -> int:
    """Mark PENDING / IN_PROGRESS links as SKIPPED. Runs inside the caller's transaction."""
    result = await db.execute(
        select(TripTaskLink).where(
            TripTaskLink.trip_id == trip_id,
            TripTaskLink.status.in_(OPEN_LINK_STATUSES),
            TripTaskLink.deleted_at.is_(None),
        )
    )
    links = result.scalars().all()

    for link in links:
        link.status = TripTaskLinkStatus.SKIPPED
        link.notes = f"{link.notes}\n{note}" if link.notes else note

    return len(links)
