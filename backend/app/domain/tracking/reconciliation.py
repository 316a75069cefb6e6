"""
Odometer reconciliation.

Compares a physically read odometer value against the vehicle's stored
odometer, records the result, and moves the stored value forward.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.db.session import utcnow
from backend.app.models.trip_reconciliation import TripReconciliation
from backend.app.models.vehicle import Vehicle

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10


async def perform_reconciliation(
    db: AsyncSession,
    organization_id: int,
    vehicle_id: int,
    actual_odometer: int,
    performed_by_id: int,
    notes: Optional[str] = None,
) -> TripReconciliation:
    """
    Record an odometer audit for a vehicle of the organization.

    Raises:
        ResourceNotFoundError: vehicle unknown or owned by another organization
    """
    result = await db.execute(
        select(Vehicle).where(
            Vehicle.id == vehicle_id,
            Vehicle.organization_id == organization_id,
            Vehicle.deleted_at.is_(None),
        )
    )
    vehicle = result.scalar_one_or_none()
    if vehicle is None:
        raise ResourceNotFoundError(
            "Vehicle",
            vehicle_id,
            message="Vehicle not found or does not belong to this organization",
        )

    now = utcnow()
    expected = vehicle.current_odometer or 0
    difference = abs(actual_odometer - expected)
    threshold = settings.mileage_threshold_km

    reconciliation = TripReconciliation(
        organization_id=organization_id,
        vehicle_id=vehicle_id,
        actual_odometer=actual_odometer,
        expected_odometer=expected,
        difference_km=difference,
        threshold_km=threshold,
        is_anomaly=difference > threshold,
        performed_by_id=performed_by_id,
        performed_at=now,
        notes=notes,
    )
    db.add(reconciliation)

    vehicle.current_odometer = actual_odometer
    vehicle.last_odometer_update = now

    await db.commit()
    await db.refresh(reconciliation)

    if reconciliation.is_anomaly:
        logger.warning(
            "Odometer mismatch on vehicle %s: expected %s km, read %s km",
            vehicle_id, expected, actual_odometer,
        )
    return reconciliation


async def get_reconciliation_history(
    db: AsyncSession,
    organization_id: int,
    vehicle_id: int,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> List[TripReconciliation]:
    """Reconciliations of a vehicle, newest first."""
    result = await db.execute(
        select(TripReconciliation)
        .where(
            TripReconciliation.vehicle_id == vehicle_id,
            TripReconciliation.organization_id == organization_id,
        )
        .order_by(desc(TripReconciliation.performed_at), desc(TripReconciliation.id))
        .limit(limit)
    )
    return result.scalars().all()
