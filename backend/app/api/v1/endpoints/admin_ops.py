"""
Admin Operations API Endpoints.

Endpoints for running the stale-trip sweeper on demand and inspecting
failed background work.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, func, desc

from backend.app.db.session import get_db, get_session_factory
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.enums import UserRole
from backend.app.schemas.admin_ops import SweepReportResponse, DLQEntryResponse, DLQListResponse
from backend.app.core.guards import require_role
from backend.app.domain.tracking.sweeper import retry_dead_letter, run_sweep

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.post("/sweep", response_model=SweepReportResponse)
async def trigger_sweep(
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    session_factory: async_sessionmaker = Depends(get_session_factory)
):
    """Run one stale-trip sweeper pass now."""
    report = await run_sweep(session_factory)
    return SweepReportResponse(**report.as_dict())


@router.get("/dlq", response_model=DLQListResponse)
async def list_dlq(
    status_filter: Optional[DLQStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Failed sweeper work items, newest first."""
    query = select(DeadLetterQueue)
    count_query = select(func.count(DeadLetterQueue.id))
    if status_filter:
        query = query.where(DeadLetterQueue.status == status_filter)
        count_query = count_query.where(DeadLetterQueue.status == status_filter)

    total = (await db.execute(count_query)).scalar()
    result = await db.execute(
        query.order_by(desc(DeadLetterQueue.created_at), desc(DeadLetterQueue.id)).limit(limit)
    )

    return DLQListResponse(
        entries=[DLQEntryResponse.model_validate(e) for e in result.scalars().all()],
        total=total
    )


@router.post("/dlq/{dlq_id}/retry", response_model=DLQEntryResponse)
async def retry_dlq_item(
    dlq_id: int = Path(..., description="DLQ Item ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    session_factory: async_sessionmaker = Depends(get_session_factory)
):
    """
    Replay a failed sweeper item now.

    Returns the entry as PROCESSED on success, or FAILED / ARCHIVED with
    the new error.
    """
    return await retry_dead_letter(session_factory, dlq_id)
