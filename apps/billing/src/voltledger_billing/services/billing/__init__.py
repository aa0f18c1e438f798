"""Billing orchestration services."""

from .exceptions import (
    BillingAction,
    BillingConnectionError,
    BillingCustomerNotFoundError,
    BillingError,
    BillingPreconditionError,
)
from .eligibility import EligibilityGuard
from .notifications import NewInvoiceNotification, NotificationBridge, format_invoice_amount
from .purger import BillingTestDataPurger
from .settlement import PeriodicQueryWindow, SettlementBatchRunner, SettlementSummary
from .store import InvoiceFilter, LedgerStore, SqlAlchemyLedgerStore
from .synchronizer import AccountSynchronizer

__all__ = [
    "AccountSynchronizer",
    "BillingAction",
    "BillingConnectionError",
    "BillingCustomerNotFoundError",
    "BillingError",
    "BillingPreconditionError",
    "BillingTestDataPurger",
    "EligibilityGuard",
    "InvoiceFilter",
    "LedgerStore",
    "NewInvoiceNotification",
    "NotificationBridge",
    "PeriodicQueryWindow",
    "SettlementBatchRunner",
    "SettlementSummary",
    "SqlAlchemyLedgerStore",
    "format_invoice_amount",
]
