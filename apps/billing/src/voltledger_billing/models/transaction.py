"""Metered charging sessions."""

from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from voltledger_billing.db.base import Base


class Transaction(Base):
    """A charging session; ``billing_data`` mirrors the invoice state once billed."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    charging_station_id = Column(
        String,
        ForeignKey("charging_stations.id", ondelete="SET NULL"),
        nullable=True,
    )
    site_area_id = Column(
        UUID(as_uuid=True),
        ForeignKey("site_areas.id", ondelete="SET NULL"),
        nullable=True,
    )
    timestamp = Column(DateTime(timezone=True), nullable=False)
    stop_timestamp = Column(DateTime(timezone=True), nullable=True)
    last_consumption_timestamp = Column(DateTime(timezone=True), nullable=True)
    total_consumption_wh = Column(Integer, nullable=False, default=0, server_default="0")
    billing_data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User")
    charging_station = relationship("ChargingStation")
    site_area = relationship("SiteArea")
