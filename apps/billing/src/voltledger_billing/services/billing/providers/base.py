"""Capability interface every billing vendor adapter conforms to."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, Sequence

from voltledger_billing.models.invoice import BillingInvoice, BillingInvoiceStatusEnum
from voltledger_billing.models.user import ProviderLink, User


@dataclass(slots=True)
class ProviderInvoice:
    """Invoice state reported by the provider after a settlement attempt."""

    invoice_id: str
    status: BillingInvoiceStatusEnum
    number: str | None
    amount: int
    currency: str
    live_mode: bool
    pay_invoice_url: str | None = None
    payment_error: str | None = None


@dataclass(slots=True)
class BillingTax:
    tax_id: str
    description: str | None
    display_name: str
    percentage: Decimal


@dataclass(slots=True)
class BillingPaymentMethod:
    payment_method_id: str
    brand: str | None
    last4: str | None
    expiring_on: str | None
    is_default: bool


@dataclass(slots=True)
class BillingOperationResult:
    succeeded: bool
    error: str | None = None
    internal_data: dict[str, object] | None = None


class BillingProvider(Protocol):
    """Customer, invoice, tax and payment-method operations of a billing vendor.

    Adapters raise on transport or vendor errors. ``get_customer`` returns
    ``None`` when the account has no provider record to fetch and raises
    ``BillingCustomerNotFoundError`` when the provider explicitly reports the
    linked customer as missing.
    """

    async def check_connection(self) -> None:
        ...

    async def is_linked(self, user: User) -> bool:
        ...

    async def get_customer(self, user: User) -> ProviderLink | None:
        ...

    async def create_customer(self, user: User) -> ProviderLink:
        ...

    async def update_customer(self, user: User) -> ProviderLink:
        ...

    async def repair_customer(self, user: User) -> ProviderLink:
        ...

    async def settle_invoice(self, invoice: BillingInvoice) -> ProviderInvoice:
        ...

    async def get_taxes(self) -> Sequence[BillingTax]:
        ...

    async def setup_payment_method(
        self, user: User, payment_method_id: str | None
    ) -> BillingOperationResult:
        ...

    async def list_payment_methods(self, user: User) -> Sequence[BillingPaymentMethod]:
        ...

    async def delete_payment_method(self, user: User, payment_method_id: str) -> BillingOperationResult:
        ...
