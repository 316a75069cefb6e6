"""
Anomaly classifier.

Creates typed anomaly records, resolves them, and lists them for review.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
)
from backend.app.db.session import utcnow
from backend.app.models.trip import Trip
from backend.app.models.trip_anomaly import TripAnomaly
from backend.app.models.trip_enums import AnomalyType, AnomalySeverity
from backend.app.services.audit import AuditAction, log_event

logger = logging.getLogger(__name__)

DEFAULT_UNRESOLVED_LIMIT = 50


async def create_anomaly(
    db: AsyncSession,
    trip: Trip,
    severity: AnomalySeverity,
    details: BaseModel,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> TripAnomaly:
    """
    Record an anomaly against a trip and bump the trip's anomaly counter.

    The anomaly type comes from the ``type`` tag of the details model. The
    caller owns the transaction (and holds the trip lock).
    """
    anomaly = TripAnomaly(
        trip_id=trip.id,
        type=AnomalyType(details.type),
        severity=severity,
        latitude=latitude,
        longitude=longitude,
        details=details.model_dump(mode="json"),
        detected_at=utcnow(),
    )
    db.add(anomaly)

    trip.total_anomalies = (trip.total_anomalies or 0) + 1
    await db.flush()

    logger.info(
        "Anomaly %s (%s) raised on trip %s", anomaly.type.value, severity.value, trip.id
    )
    return anomaly


async def get_anomaly(db: AsyncSession, anomaly_id: int) -> TripAnomaly:
    anomaly = await db.get(TripAnomaly, anomaly_id)
    if anomaly is None:
        raise ResourceNotFoundError("Anomaly", anomaly_id)
    return anomaly


async def resolve_anomaly(
    db: AsyncSession,
    anomaly_id: int,
    resolver_id: int,
    organization_id: Optional[int],
    notes: Optional[str] = None,
) -> TripAnomaly:
    """
    Mark an anomaly as reviewed and record it in the audit log under the
    trip's organization. Re-resolving writes nothing.

    Args:
        organization_id: Caller's organization; None skips the check (platform admins)

    Raises:
        ResourceNotFoundError: unknown anomaly
        InsufficientPermissionsError: anomaly belongs to another organization
        ConflictError: already resolved and ``anomaly_reject_reresolve`` is on
    """
    anomaly = await get_anomaly(db, anomaly_id)

    trip = await db.get(Trip, anomaly.trip_id)
    if organization_id is not None and (trip is None or trip.organization_id != organization_id):
        raise InsufficientPermissionsError(message="Access denied to this anomaly")

    if anomaly.resolved:
        if settings.anomaly_reject_reresolve:
            raise ConflictError(
                "Anomaly is already resolved",
                details={"anomaly_id": anomaly.id, "resolved_by_id": anomaly.resolved_by_id},
            )
        return anomaly

    anomaly.resolved = True
    anomaly.resolved_by_id = resolver_id
    anomaly.resolved_at = utcnow()
    anomaly.resolution_notes = notes

    await db.commit()

    await log_event(
        db,
        AuditAction.ANOMALY_RESOLVED,
        organization_id=trip.organization_id if trip else None,
        actor_id=resolver_id,
        entity_type="anomaly",
        entity_id=anomaly.id,
        metadata={"trip_id": anomaly.trip_id, "notes": notes},
    )
    await db.refresh(anomaly)

    logger.info("Anomaly %s resolved by user %s", anomaly.id, resolver_id)
    return anomaly


async def list_unresolved_anomalies(
    db: AsyncSession,
    organization_id: int,
    employee_id: Optional[int] = None,
    severity: Optional[AnomalySeverity] = None,
    anomaly_type: Optional[AnomalyType] = None,
    limit: int = DEFAULT_UNRESOLVED_LIMIT,
) -> List[TripAnomaly]:
    """Unresolved anomalies of an organization, newest first."""
    query = (
        select(TripAnomaly)
        .join(Trip, Trip.id == TripAnomaly.trip_id)
        .where(
            Trip.organization_id == organization_id,
            TripAnomaly.resolved.is_(False),
        )
    )

    if employee_id:
        query = query.where(Trip.employee_id == employee_id)

    if severity:
        query = query.where(TripAnomaly.severity == severity)

    if anomaly_type:
        query = query.where(TripAnomaly.type == anomaly_type)

    query = query.order_by(desc(TripAnomaly.detected_at), desc(TripAnomaly.id)).limit(limit)

    result = await db.execute(query)
    return result.scalars().all()


async def list_trip_anomalies(db: AsyncSession, trip_id: int) -> List[TripAnomaly]:
    """All anomalies of one trip, newest first."""
    result = await db.execute(
        select(TripAnomaly)
        .where(TripAnomaly.trip_id == trip_id)
        .order_by(desc(TripAnomaly.detected_at), desc(TripAnomaly.id))
    )
    return result.scalars().all()
