"""Audit trail of periodic settlement runs."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from voltledger_billing.db.base import Base


class BillingSettlementRun(Base):
    __tablename__ = "billing_settlement_runs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    status = Column(String(16), nullable=False, default="running", server_default="running")
    forced = Column(Boolean, nullable=False, default=False, server_default="false")
    triggered_by = Column(String, nullable=True)
    succeeded_count = Column(Integer, nullable=False, default=0, server_default="0")
    failed_count = Column(Integer, nullable=False, default=0, server_default="0")
    skipped_count = Column(Integer, nullable=False, default=0, server_default="0")
    compensated_count = Column(Integer, nullable=False, default=0, server_default="0")
    error_message = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
