"""
Vehicle database model.

Vehicles are registered by the organization service; the tracking core
reads ownership and keeps the odometer current.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base, utcnow
from backend.app.models.enums import VehicleType, VehicleStatus


class Vehicle(Base):
    """
    Vehicle model.

    ``current_odometer`` (km) is advanced by trip end and by odometer
    reconciliation.
    """
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership - Vehicle belongs to one organization
    organization_id = Column(Integer, nullable=False, index=True)

    # Vehicle identification
    plate_number = Column(String(20), nullable=False, index=True)
    type = Column(Enum(VehicleType), default=VehicleType.COMPANY, nullable=False)
    brand = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)

    status = Column(Enum(VehicleStatus), default=VehicleStatus.ACTIVE, nullable=False, index=True)

    # Odometer (km)
    current_odometer = Column(Integer, default=0, nullable=False)
    last_odometer_update = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate='{self.plate_number}', org={self.organization_id})>"
