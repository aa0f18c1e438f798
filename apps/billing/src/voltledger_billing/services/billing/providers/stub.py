"""Fallback provider used in development when Stripe credentials are absent."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from voltledger_billing.models.invoice import BillingInvoice, BillingInvoiceStatusEnum
from voltledger_billing.models.user import ProviderLink, User
from voltledger_billing.services.billing.exceptions import (
    BillingAction,
    BillingCustomerNotFoundError,
)

from .base import BillingOperationResult, BillingPaymentMethod, BillingTax, ProviderInvoice

_SETTLED_TRANSITIONS = {
    BillingInvoiceStatusEnum.DRAFT: BillingInvoiceStatusEnum.PAID,
    BillingInvoiceStatusEnum.OPEN: BillingInvoiceStatusEnum.PAID,
}


class StubBillingProvider:
    """Keeps customers in memory and settles every draft/open invoice as paid."""

    def __init__(self) -> None:
        self.customers: dict[str, dict[str, str]] = {}
        self.payment_methods: dict[str, list[str]] = {}

    async def check_connection(self) -> None:
        return None

    def _allocate(self, user: User) -> ProviderLink:
        customer_id = f"stub_cus_{uuid4().hex[:14]}"
        self.customers[customer_id] = {"email": user.email, "user_id": str(user.id)}
        return ProviderLink(customer_id=customer_id, live_mode=False)

    async def is_linked(self, user: User) -> bool:
        return bool(user.billing_customer_id) and user.billing_customer_id in self.customers

    async def get_customer(self, user: User) -> ProviderLink | None:
        if not user.billing_customer_id:
            return None
        if user.billing_customer_id not in self.customers:
            raise BillingCustomerNotFoundError(
                f"Stub customer '{user.billing_customer_id}' does not exist",
                action=BillingAction.FORCE_SYNCHRONIZE_USER,
            )
        return ProviderLink(customer_id=user.billing_customer_id, live_mode=False)

    async def create_customer(self, user: User) -> ProviderLink:
        return self._allocate(user)

    async def update_customer(self, user: User) -> ProviderLink:
        link = await self.get_customer(user)
        if link is None:
            return self._allocate(user)
        self.customers[link.customer_id]["email"] = user.email
        return link

    async def repair_customer(self, user: User) -> ProviderLink:
        return self._allocate(user)

    async def settle_invoice(self, invoice: BillingInvoice) -> ProviderInvoice:
        status = BillingInvoiceStatusEnum(invoice.status)
        return ProviderInvoice(
            invoice_id=invoice.invoice_id,
            status=_SETTLED_TRANSITIONS.get(status, status),
            number=invoice.number or f"STUB-{invoice.invoice_id[-6:].upper()}",
            amount=invoice.amount,
            currency=invoice.currency,
            live_mode=False,
            pay_invoice_url=None,
        )

    async def get_taxes(self) -> list[BillingTax]:
        return [
            BillingTax(
                tax_id="stub_txr_vat",
                description="Stub VAT",
                display_name="VAT",
                percentage=Decimal("20"),
            )
        ]

    async def setup_payment_method(
        self, user: User, payment_method_id: str | None
    ) -> BillingOperationResult:
        if not payment_method_id:
            return BillingOperationResult(succeeded=True, internal_data={"client_secret": "stub_seti_secret"})
        self.payment_methods.setdefault(str(user.id), []).append(payment_method_id)
        return BillingOperationResult(succeeded=True)

    async def list_payment_methods(self, user: User) -> list[BillingPaymentMethod]:
        methods = self.payment_methods.get(str(user.id), [])
        return [
            BillingPaymentMethod(
                payment_method_id=method_id,
                brand="visa",
                last4="4242",
                expiring_on=None,
                is_default=index == len(methods) - 1,
            )
            for index, method_id in enumerate(methods)
        ]

    async def delete_payment_method(self, user: User, payment_method_id: str) -> BillingOperationResult:
        methods = self.payment_methods.get(str(user.id), [])
        if payment_method_id not in methods:
            return BillingOperationResult(succeeded=False, error="unknown payment method")
        methods.remove(payment_method_id)
        return BillingOperationResult(succeeded=True)
