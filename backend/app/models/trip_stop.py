"""
Trip Stop database model.

Stops are dwell periods detected from the GPS stream.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Boolean, Numeric, Index, text
from sqlalchemy.sql import func
from backend.app.db.session import Base, utcnow


class TripStop(Base):
    """
    Trip Stop model.

    Opened when accepted points cluster within the stop radius, closed when
    movement resumes or the trip ends. A stop matched to a service site
    within the geofence radius is ``is_verified``.
    """
    __tablename__ = "trip_stops"
    __table_args__ = (
        # At most one open stop per trip
        Index(
            "uq_trip_stops_open",
            "trip_id",
            unique=True,
            postgresql_where=text("ended_at IS NULL"),
            sqlite_where=text("ended_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    trip_id = Column(Integer, ForeignKey('trips.id', ondelete="CASCADE"), nullable=False, index=True)

    # Stop center
    latitude = Column(Numeric(10, 7, asdecimal=False), nullable=False)
    longitude = Column(Numeric(10, 7, asdecimal=False), nullable=False)

    # Matched service site (copied so history survives site edits)
    site_id = Column(Integer, ForeignKey('service_sites.id'), nullable=True, index=True)
    site_name = Column(String(200), nullable=True)
    site_address = Column(String(500), nullable=True)
    distance_to_site_meters = Column(Integer, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Integer, nullable=True)

    is_verified = Column(Boolean, default=False, nullable=False)
    is_anomaly = Column(Boolean, default=False, nullable=False)
    notification_sent = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TripStop(id={self.id}, trip_id={self.trip_id}, site_id={self.site_id}, open={self.ended_at is None})>"
