"""
Trip database model.

A trip is one work session of one field employee, optionally in one vehicle.
"""

from sqlalchemy import Column, Integer, Text, Boolean, ForeignKey, DateTime, Enum, Numeric, Index, text
from sqlalchemy.sql import func
from backend.app.db.session import Base, utcnow
from backend.app.models.trip_enums import TripStatus, TripTaskType


class Trip(Base):
    """
    Trip model.

    Created on start, mutated by point ingestion, stop detection and anomaly
    detection, finalized by end / cancel / auto-close. Never physically
    deleted; ``deleted_at`` marks soft removal.
    """
    __tablename__ = "trips"
    __table_args__ = (
        # One ACTIVE trip per employee
        Index(
            "uq_trips_employee_active",
            "employee_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE' AND deleted_at IS NULL"),
            sqlite_where=text("status = 'ACTIVE' AND deleted_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    organization_id = Column(Integer, nullable=False, index=True)
    employee_id = Column(Integer, nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=True, index=True)

    task_type = Column(Enum(TripTaskType), default=TripTaskType.OTHER, nullable=False)
    status = Column(Enum(TripStatus), default=TripStatus.ACTIVE, nullable=False, index=True)

    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    # Odometer readings (km)
    start_odometer = Column(Integer, nullable=True)
    end_odometer = Column(Integer, nullable=True)

    # GPS-derived distance (meters)
    calculated_distance_meters = Column(Integer, default=0, nullable=False)

    start_latitude = Column(Numeric(10, 7, asdecimal=False), nullable=True)
    start_longitude = Column(Numeric(10, 7, asdecimal=False), nullable=True)
    end_latitude = Column(Numeric(10, 7, asdecimal=False), nullable=True)
    end_longitude = Column(Numeric(10, 7, asdecimal=False), nullable=True)

    # First / last verified site of the trip
    start_site_id = Column(Integer, ForeignKey('service_sites.id'), nullable=True)
    end_site_id = Column(Integer, ForeignKey('service_sites.id'), nullable=True)

    # Running counters
    total_points = Column(Integer, default=0, nullable=False)
    total_stops = Column(Integer, default=0, nullable=False)
    total_anomalies = Column(Integer, default=0, nullable=False)
    visited_sites_count = Column(Integer, default=0, nullable=False)

    # Live location sharing
    live_location_active = Column(Boolean, default=False, nullable=False)
    last_location_update = Column(DateTime(timezone=True), nullable=True, index=True)

    notes = Column(Text, nullable=True)

    created_by_id = Column(Integer, nullable=True)
    updated_by_id = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def append_note(self, note: str) -> None:
        """Append a line to the free-text notes."""
        self.notes = f"{self.notes}\n{note}" if self.notes else note

    def __repr__(self):
        return f"<Trip(id={self.id}, employee_id={self.employee_id}, status='{self.status.value}')>"
