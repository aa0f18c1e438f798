"""Billing data mirrored onto charging session records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, Field

from voltledger_billing.models.invoice import BillingInvoiceStatusEnum


class BillingStatusEnum(str, Enum):
    UNBILLED = "unbilled"
    PENDING = "pending"
    BILLED = "billed"
    FAILED = "failed"


class BillingDataStop(BaseModel):
    status: BillingStatusEnum = BillingStatusEnum.UNBILLED
    invoice_id: str | None = None
    invoice_number: str | None = None
    invoice_status: BillingInvoiceStatusEnum | None = None


class TransactionBillingData(BaseModel):
    with_billing_active: bool = False
    last_update: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stop: BillingDataStop | None = None

    @classmethod
    def from_json(cls, payload: Mapping[str, Any] | None) -> "TransactionBillingData | None":
        if not payload:
            return None
        return cls.model_validate(payload)

    @classmethod
    def unbilled(cls) -> "TransactionBillingData":
        return cls(
            with_billing_active=False,
            stop=BillingDataStop(status=BillingStatusEnum.UNBILLED),
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
