"""
Service Site database model.

A service site is the physical location of a vending machine. The site
directory is maintained elsewhere; the tracking core only geofences
against it.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base, utcnow


class ServiceSite(Base):
    """
    Service Site model.

    Only active, non-removed sites with coordinates take part in geofencing.
    """
    __tablename__ = "service_sites"
    __table_args__ = (
        Index("ix_service_sites_org_lat_lng", "organization_id", "latitude", "longitude"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    organization_id = Column(Integer, nullable=False, index=True)

    # Site details
    site_number = Column(String(50), nullable=False)
    name = Column(String(200), nullable=True)
    address = Column(String(500), nullable=True)

    # Geolocation
    latitude = Column(Numeric(10, 7, asdecimal=False), nullable=True)
    longitude = Column(Numeric(10, 7, asdecimal=False), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def display_name(self) -> str:
        return self.name or self.site_number

    def __repr__(self):
        return f"<ServiceSite(id={self.id}, number='{self.site_number}', active={self.is_active})>"
