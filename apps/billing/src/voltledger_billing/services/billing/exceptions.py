"""Error taxonomy for billing orchestration."""

from __future__ import annotations

from enum import Enum


class BillingAction(str, Enum):
    """Operation names attached to billing log entries and errors."""

    SYNCHRONIZE_USER = "billing_synchronize_user"
    FORCE_SYNCHRONIZE_USER = "billing_force_synchronize_user"
    PERFORM_OPERATIONS = "billing_perform_operations"
    CHARGE_INVOICE = "billing_charge_invoice"
    TRANSACTION = "billing_transaction"
    NEW_INVOICE_NOTIFICATION = "billing_new_invoice_notification"
    TEST_DATA_CLEANUP = "billing_test_data_cleanup"
    CHECK_CONNECTION = "billing_check_connection"


class BillingError(RuntimeError):
    """Base error raised by billing services."""

    def __init__(self, message: str, *, action: BillingAction | None = None) -> None:
        super().__init__(message)
        self.action = action


class BillingPreconditionError(BillingError):
    """A required identity or configuration is missing; never retried."""


class BillingConnectionError(BillingError):
    """The billing provider cannot be reached; aborts a settlement run."""


class BillingCustomerNotFoundError(BillingError):
    """The provider explicitly reports that the linked customer does not exist."""
