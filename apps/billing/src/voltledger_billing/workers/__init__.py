"""Background workers supporting async processing."""

from .billing_settlement import BillingSettlementWorker

__all__ = ["BillingSettlementWorker"]
