"""Billing provider adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

from voltledger_billing.services.billing.exceptions import BillingAction, BillingPreconditionError

from .base import (
    BillingOperationResult,
    BillingPaymentMethod,
    BillingProvider,
    BillingTax,
    ProviderInvoice,
)
from .stripe import StripeBillingProvider
from .stub import StubBillingProvider

if TYPE_CHECKING:
    from voltledger_billing.core.settings import Settings


def build_billing_provider(settings: "Settings") -> BillingProvider:
    """Resolve the configured vendor adapter, falling back to the stub in development."""

    if settings.stripe_secret_key:
        return StripeBillingProvider(settings.stripe_secret_key)
    if settings.environment == "development":
        return StubBillingProvider()
    raise BillingPreconditionError(
        "Stripe credentials are not configured",
        action=BillingAction.CHECK_CONNECTION,
    )


__all__ = [
    "BillingOperationResult",
    "BillingPaymentMethod",
    "BillingProvider",
    "BillingTax",
    "ProviderInvoice",
    "StripeBillingProvider",
    "StubBillingProvider",
    "build_billing_provider",
]
