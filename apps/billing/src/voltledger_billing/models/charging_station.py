"""Charging infrastructure referenced by metered sessions."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from voltledger_billing.db.base import Base


class SiteArea(Base):
    """Locality grouping charging stations; may enforce access control."""

    __tablename__ = "site_areas"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String, nullable=False)
    access_control = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    charging_stations = relationship("ChargingStation", back_populates="site_area")


class ChargingStation(Base):
    __tablename__ = "charging_stations"

    id = Column(String, primary_key=True)
    site_area_id = Column(
        UUID(as_uuid=True),
        ForeignKey("site_areas.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    vendor = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    site_area = relationship("SiteArea", back_populates="charging_stations")
