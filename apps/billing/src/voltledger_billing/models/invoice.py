"""Billing invoice models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from voltledger_billing.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BillingInvoiceStatusEnum(str, Enum):
    """Lifecycle state mirrored from the billing provider."""

    DRAFT = "draft"
    OPEN = "open"
    PAID = "paid"
    UNCOLLECTIBLE = "uncollectible"
    VOID = "void"
    DELETED = "deleted"


class BillingInvoice(Base):
    """Provider-side invoice grouping the charging sessions of one user."""

    __tablename__ = "billing_invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    number = Column(String, nullable=True)
    status = Column(
        SqlEnum(
            BillingInvoiceStatusEnum,
            name="billing_invoice_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        server_default=BillingInvoiceStatusEnum.DRAFT.value,
        index=True,
    )
    live_mode = Column(Boolean, nullable=False, default=False, server_default="false")
    # Minor units (cents)
    amount = Column(Integer, nullable=False, default=0, server_default="0")
    currency = Column(String(3), nullable=False, default="EUR", server_default="EUR")
    pay_invoice_url = Column(String, nullable=True)
    download_url = Column(String, nullable=True)
    sessions = Column(JSON, nullable=True)
    created_on = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User")

    @property
    def transaction_ids(self) -> list[int]:
        return [int(session["transaction_id"]) for session in (self.sessions or [])]
