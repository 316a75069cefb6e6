"""
Trip Anomaly database model.
"""

from sqlalchemy import Column, Integer, Text, Boolean, ForeignKey, DateTime, Enum, Numeric, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base, utcnow
from backend.app.models.trip_enums import AnomalyType, AnomalySeverity


class TripAnomaly(Base):
    """
    Trip Anomaly model.

    A detected irregular event kept for human review. ``details`` holds the
    type-specific payload (see ``backend.app.schemas.anomaly``). Only the
    resolve operation mutates a stored anomaly.
    """
    __tablename__ = "trip_anomalies"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    trip_id = Column(Integer, ForeignKey('trips.id', ondelete="CASCADE"), nullable=False, index=True)

    type = Column(Enum(AnomalyType), nullable=False, index=True)
    severity = Column(Enum(AnomalySeverity), default=AnomalySeverity.WARNING, nullable=False, index=True)

    latitude = Column(Numeric(10, 7, asdecimal=False), nullable=True)
    longitude = Column(Numeric(10, 7, asdecimal=False), nullable=True)

    details = Column(JSON, nullable=False, default=dict)
    notification_sent = Column(Boolean, default=False, nullable=False)

    # Resolution
    resolved = Column(Boolean, default=False, nullable=False, index=True)
    resolved_by_id = Column(Integer, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolution_notes = Column(Text, nullable=True)

    detected_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TripAnomaly(id={self.id}, trip_id={self.trip_id}, type='{self.type.value}', resolved={self.resolved})>"
