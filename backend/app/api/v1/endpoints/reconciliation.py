"""
Odometer Reconciliation API Endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends, Path, Body, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.enums import SUPERVISOR_ROLES
from backend.app.schemas.reconciliation import ReconciliationCreate, ReconciliationResponse
from backend.app.core.guards import require_role
from backend.app.domain.tracking import reconciliation
from backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/trips/reconciliation", tags=["Trips - Reconciliation"])


@router.post("", response_model=ReconciliationResponse, status_code=status.HTTP_201_CREATED)
async def perform_reconciliation(
    data: ReconciliationCreate = Body(...),
    current_user: dict = Depends(require_role(SUPERVISOR_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Record a physical odometer reading and compare it with the stored value."""
    record = await reconciliation.perform_reconciliation(
        db,
        organization_id=current_user["organization_id"],
        vehicle_id=data.vehicle_id,
        actual_odometer=data.actual_odometer,
        performed_by_id=current_user["user_id"],
        notes=data.notes,
    )

    await log_event(
        db=db,
        action=AuditAction.ODOMETER_RECONCILED,
        organization_id=record.organization_id,
        actor_id=current_user["user_id"],
        entity_type="vehicle",
        entity_id=record.vehicle_id,
        metadata={"difference_km": record.difference_km, "is_anomaly": record.is_anomaly}
    )

    return record


@router.get("/{vehicle_id}/history", response_model=List[ReconciliationResponse])
async def get_reconciliation_history(
    vehicle_id: int = Path(..., description="Vehicle ID"),
    limit: int = Query(reconciliation.DEFAULT_HISTORY_LIMIT, ge=1, le=100),
    current_user: dict = Depends(require_role(SUPERVISOR_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await reconciliation.get_reconciliation_history(
        db, current_user["organization_id"], vehicle_id, limit=limit
    )
