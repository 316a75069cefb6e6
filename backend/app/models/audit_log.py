"""
Audit Log Database Model.

Tracks trip lifecycle actions and supervisor decisions for compliance.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base, utcnow


class AuditLog(Base):
    """
    Audit log model for tracking lifecycle and review actions.

    Events logged:
    - TRIP_STARTED / TRIP_ENDED / TRIP_CANCELLED / TRIP_AUTO_CLOSED
    - ANOMALY_RESOLVED
    - ODOMETER_RECONCILED
    - TASK_LINKED / TASK_COMPLETED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    organization_id = Column(Integer, index=True, nullable=True)

    # Who performed the action (None for system actions such as the sweeper)
    actor_id = Column(Integer, index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which record the action applied to
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
