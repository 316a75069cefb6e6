"""
Work Item database model.

Read-only view of the task system's work orders. Trips reference work
items by id through ``TripTaskLink``.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base, utcnow


class WorkItem(Base):
    """Work Item model. Only the site binding matters to the tracking core."""
    __tablename__ = "work_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    organization_id = Column(Integer, nullable=False, index=True)
    site_id = Column(Integer, ForeignKey('service_sites.id'), nullable=True, index=True)
    title = Column(String(200), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<WorkItem(id={self.id}, site_id={self.site_id})>"
