"""
Trip Point database model.

Stores the GPS breadcrumb trail of a trip, including rejected points.
"""

from sqlalchemy import Column, Integer, Float, Boolean, ForeignKey, DateTime, Enum, Numeric, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base, utcnow
from backend.app.models.trip_enums import PointFilterReason


class TripPoint(Base):
    """
    Trip Point model.

    One positional report from the employee's device. Append-only.
    Rejected points (``is_filtered``) are kept for auditing but never take
    part in distance or stop computation.
    """
    __tablename__ = "trip_points"
    __table_args__ = (
        Index("ix_trip_points_trip_filtered_recorded", "trip_id", "is_filtered", "recorded_at"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    trip_id = Column(Integer, ForeignKey('trips.id', ondelete="CASCADE"), nullable=False, index=True)

    # GPS coordinates
    latitude = Column(Numeric(10, 7, asdecimal=False), nullable=False)
    longitude = Column(Numeric(10, 7, asdecimal=False), nullable=False)
    accuracy_meters = Column(Float, nullable=True)
    speed_mps = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    altitude = Column(Float, nullable=True)

    # Distance from previous accepted point, 0 for first or rejected points
    distance_from_prev_meters = Column(Numeric(10, 2, asdecimal=False), default=0, nullable=False)

    is_filtered = Column(Boolean, default=False, nullable=False)
    filter_reason = Column(Enum(PointFilterReason), nullable=True)

    # Timing
    recorded_at = Column(DateTime(timezone=True), nullable=False)  # When GPS was recorded
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TripPoint(trip_id={self.trip_id}, lat={self.latitude}, lng={self.longitude}, filtered={self.is_filtered})>"
