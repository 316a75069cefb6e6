"""
Anomaly Review API Endpoints.

Supervisors review and resolve anomalies raised during trips.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Body, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.enums import SUPERVISOR_ROLES, UserRole
from backend.app.models.trip_enums import AnomalySeverity, AnomalyType
from backend.app.schemas.anomaly import AnomalyResponse, AnomalyListResponse, ResolveAnomaly
from backend.app.core.guards import require_role
from backend.app.domain.tracking import anomalies

router = APIRouter(prefix="/trips/anomalies", tags=["Trips - Anomalies"])


@router.get("/unresolved", response_model=AnomalyListResponse)
async def list_unresolved_anomalies(
    employee_id: Optional[int] = Query(None),
    severity: Optional[AnomalySeverity] = Query(None),
    anomaly_type: Optional[AnomalyType] = Query(None, alias="type"),
    limit: int = Query(anomalies.DEFAULT_UNRESOLVED_LIMIT, ge=1, le=200),
    current_user: dict = Depends(require_role(SUPERVISOR_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Unresolved anomalies of the caller's organization, newest first."""
    items = await anomalies.list_unresolved_anomalies(
        db,
        organization_id=current_user["organization_id"],
        employee_id=employee_id,
        severity=severity,
        anomaly_type=anomaly_type,
        limit=limit,
    )
    return AnomalyListResponse(
        anomalies=[AnomalyResponse.model_validate(a) for a in items],
        total=len(items)
    )


@router.post("/{anomaly_id}/resolve", response_model=AnomalyResponse)
async def resolve_anomaly(
    anomaly_id: int = Path(..., description="Anomaly ID"),
    data: Optional[ResolveAnomaly] = Body(None),
    current_user: dict = Depends(require_role(SUPERVISOR_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """
    Resolve an anomaly.

    Re-resolving is a no-op unless ``ANOMALY_REJECT_RERESOLVE`` is set, in
    which case it answers 409. Only a real resolution is audited.
    """
    data = data or ResolveAnomaly()
    # Platform admins may resolve anomalies of any organization
    organization_id = None if current_user.get("role") == UserRole.ADMIN.value else current_user["organization_id"]

    return await anomalies.resolve_anomaly(
        db,
        anomaly_id,
        resolver_id=current_user["user_id"],
        organization_id=organization_id,
        notes=data.notes,
    )
