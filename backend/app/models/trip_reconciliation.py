"""
Trip Reconciliation database model.

Point-in-time odometer audit of a vehicle, independent of any trip.
"""

from sqlalchemy import Column, Integer, Text, Boolean, ForeignKey, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base, utcnow


class TripReconciliation(Base):
    """
    Odometer reconciliation record. Immutable once created.
    """
    __tablename__ = "trip_reconciliations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    organization_id = Column(Integer, nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=False, index=True)

    # Odometer readings (km)
    actual_odometer = Column(Integer, nullable=False)
    expected_odometer = Column(Integer, nullable=False)
    difference_km = Column(Integer, nullable=False)
    threshold_km = Column(Integer, nullable=False)
    is_anomaly = Column(Boolean, default=False, nullable=False)

    performed_by_id = Column(Integer, nullable=False)
    performed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TripReconciliation(vehicle_id={self.vehicle_id}, diff={self.difference_km}, anomaly={self.is_anomaly})>"
