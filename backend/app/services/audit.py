"""
Audit logging service for trip lifecycle and review actions.

Provides centralized logging for compliance monitoring.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Trip lifecycle
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_ENDED = "TRIP_ENDED"
    TRIP_CANCELLED = "TRIP_CANCELLED"
    TRIP_AUTO_CLOSED = "TRIP_AUTO_CLOSED"

    # Work items
    TASK_LINKED = "TASK_LINKED"
    TASK_COMPLETED = "TASK_COMPLETED"

    # Review
    ANOMALY_RESOLVED = "ANOMALY_RESOLVED"
    ODOMETER_RECONCILED = "ODOMETER_RECONCILED"


async def log_event(
    db: AsyncSession,
    action: str,
    organization_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Log an event to the audit log.

    Commits the session, so call it after the action's own commit.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        organization_id: Organization the entity belongs to
        actor_id: ID of user performing the action (None for the sweeper)
        entity_type: Kind of record acted upon, e.g. "trip"
        entity_id: ID of record acted upon
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        organization_id=organization_id,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log
