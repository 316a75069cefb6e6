"""
Trip Task Link database model.

Associates a trip with a work item held by the task system.
"""

from sqlalchemy import Column, Integer, Text, Boolean, ForeignKey, DateTime, Enum, Index, text
from sqlalchemy.sql import func
from backend.app.db.session import Base, utcnow
from backend.app.models.trip_enums import TripTaskLinkStatus


class TripTaskLink(Base):
    """
    Trip Task Link model.

    ``task_id`` is an opaque work-item identifier. The link moves to
    IN_PROGRESS with ``verified_by_gps`` when a verified stop happens at the
    work item's site.
    """
    __tablename__ = "trip_task_links"
    __table_args__ = (
        Index(
            "uq_trip_task_links_trip_task",
            "trip_id",
            "task_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    trip_id = Column(Integer, ForeignKey('trips.id', ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(Integer, nullable=False, index=True)

    status = Column(Enum(TripTaskLinkStatus), default=TripTaskLinkStatus.PENDING, nullable=False)

    verified_by_gps = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_by_id = Column(Integer, nullable=True)
    updated_by_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<TripTaskLink(trip_id={self.trip_id}, task_id={self.task_id}, status='{self.status.value}')>"
