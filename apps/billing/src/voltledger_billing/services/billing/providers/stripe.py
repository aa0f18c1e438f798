"""Stripe adapter for the billing provider capability interface."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from typing import Any, Mapping
from uuid import uuid4

import stripe
from loguru import logger

from voltledger_billing.models.invoice import BillingInvoice, BillingInvoiceStatusEnum
from voltledger_billing.models.user import ProviderLink, User
from voltledger_billing.services.billing.exceptions import (
    BillingAction,
    BillingConnectionError,
    BillingCustomerNotFoundError,
    BillingPreconditionError,
)

from .base import BillingOperationResult, BillingPaymentMethod, BillingTax, ProviderInvoice


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _is_resource_missing(exc: stripe.InvalidRequestError) -> bool:
    return getattr(exc, "code", None) == "resource_missing"


class StripeBillingProvider:
    """Thin asynchronous wrapper around the official Stripe SDK."""

    def __init__(self, secret_key: str) -> None:
        if not secret_key:
            raise ValueError("Stripe secret key must be provided")
        self._secret_key = secret_key
        stripe.api_key = secret_key

    @property
    def live_mode(self) -> bool:
        return self._secret_key.startswith("sk_live_")

    async def _run(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Execute blocking Stripe SDK calls in a worker thread."""

        return await asyncio.to_thread(func, *args, **kwargs)

    async def check_connection(self) -> None:
        try:
            await self._run(stripe.Account.retrieve)
        except stripe.StripeError as exc:
            raise BillingConnectionError(
                f"Failed to connect to Stripe: {exc}",
                action=BillingAction.CHECK_CONNECTION,
            ) from exc

    # Customers

    def _customer_payload(self, user: User) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "email": user.email,
            "name": user.full_name,
            "metadata": {"user_id": str(user.id)},
        }
        if user.locale:
            payload["preferred_locales"] = [user.locale.split("_")[0]]
        return payload

    def _to_link(self, customer: Any) -> ProviderLink:
        return ProviderLink(
            customer_id=str(_get(customer, "id")),
            live_mode=bool(_get(customer, "livemode", self.live_mode)),
        )

    async def _retrieve_customer(self, customer_id: str) -> Any:
        try:
            customer = await self._run(stripe.Customer.retrieve, customer_id)
        except stripe.InvalidRequestError as exc:
            if _is_resource_missing(exc):
                raise BillingCustomerNotFoundError(
                    f"Stripe customer '{customer_id}' does not exist",
                    action=BillingAction.FORCE_SYNCHRONIZE_USER,
                ) from exc
            raise
        if _get(customer, "deleted", False):
            raise BillingCustomerNotFoundError(
                f"Stripe customer '{customer_id}' has been deleted",
                action=BillingAction.FORCE_SYNCHRONIZE_USER,
            )
        return customer

    async def is_linked(self, user: User) -> bool:
        if not user.billing_customer_id:
            return False
        try:
            await self._retrieve_customer(user.billing_customer_id)
        except BillingCustomerNotFoundError:
            return False
        return True

    async def get_customer(self, user: User) -> ProviderLink | None:
        if not user.billing_customer_id:
            return None
        customer = await self._retrieve_customer(user.billing_customer_id)
        return self._to_link(customer)

    async def create_customer(self, user: User) -> ProviderLink:
        # Scoped to one attempt: a user re-created after an unlink needs a fresh customer
        customer = await self._run(
            stripe.Customer.create,
            idempotency_key=f"user-{user.id}-create-{uuid4().hex}",
            **self._customer_payload(user),
        )
        return self._to_link(customer)

    async def update_customer(self, user: User) -> ProviderLink:
        if not user.billing_customer_id:
            raise BillingPreconditionError(
                "User has no Stripe customer to update",
                action=BillingAction.SYNCHRONIZE_USER,
            )
        customer = await self._run(
            stripe.Customer.modify,
            user.billing_customer_id,
            **self._customer_payload(user),
        )
        return self._to_link(customer)

    async def repair_customer(self, user: User) -> ProviderLink:
        # The stored customer id is not trusted: a fresh customer is allocated.
        customer = await self._run(stripe.Customer.create, **self._customer_payload(user))
        logger.warning(
            "Allocated a new Stripe customer while repairing user",
            user_id=str(user.id),
            previous_customer_id=user.billing_customer_id,
            customer_id=_get(customer, "id"),
        )
        return self._to_link(customer)

    # Invoices

    @staticmethod
    def _to_provider_invoice(
        stripe_invoice: Any,
        *,
        payment_error: str | None = None,
    ) -> ProviderInvoice:
        currency = str(_get(stripe_invoice, "currency", "eur") or "eur")
        return ProviderInvoice(
            invoice_id=str(_get(stripe_invoice, "id")),
            status=BillingInvoiceStatusEnum(_get(stripe_invoice, "status")),
            number=_get(stripe_invoice, "number"),
            amount=int(_get(stripe_invoice, "amount_due", 0) or 0),
            currency=currency.upper(),
            live_mode=bool(_get(stripe_invoice, "livemode", False)),
            pay_invoice_url=_get(stripe_invoice, "hosted_invoice_url"),
            payment_error=payment_error,
        )

    async def settle_invoice(self, invoice: BillingInvoice) -> ProviderInvoice:
        """Finalize a draft invoice and attempt to collect payment for open ones."""

        stripe_invoice = await self._run(stripe.Invoice.retrieve, invoice.invoice_id)
        if _get(stripe_invoice, "status") == BillingInvoiceStatusEnum.DRAFT.value:
            stripe_invoice = await self._run(stripe.Invoice.finalize_invoice, invoice.invoice_id)

        payment_error: str | None = None
        if _get(stripe_invoice, "status") == BillingInvoiceStatusEnum.OPEN.value:
            try:
                stripe_invoice = await self._run(
                    stripe.Invoice.pay,
                    invoice.invoice_id,
                    idempotency_key=f"invoice-{invoice.invoice_id}-pay-{date.today().isoformat()}",
                )
            except stripe.CardError as exc:
                # Declined payments leave the invoice open for the next periodic run
                payment_error = getattr(exc, "user_message", None) or str(exc)
                logger.warning(
                    "Stripe declined invoice payment",
                    invoice_id=invoice.invoice_id,
                    error=payment_error,
                )
                stripe_invoice = await self._run(stripe.Invoice.retrieve, invoice.invoice_id)
        return self._to_provider_invoice(stripe_invoice, payment_error=payment_error)

    # Taxes

    async def get_taxes(self) -> list[BillingTax]:
        response = await self._run(stripe.TaxRate.list, active=True, limit=100)
        return [
            BillingTax(
                tax_id=str(_get(rate, "id")),
                description=_get(rate, "description"),
                display_name=str(_get(rate, "display_name", "")),
                percentage=Decimal(str(_get(rate, "percentage", 0))),
            )
            for rate in (_get(response, "data", []) or [])
        ]

    # Payment methods

    def _require_customer(self, user: User) -> str:
        if not user.billing_customer_id:
            raise BillingPreconditionError(
                "User has no Stripe customer",
                action=BillingAction.TRANSACTION,
            )
        return user.billing_customer_id

    async def setup_payment_method(
        self, user: User, payment_method_id: str | None
    ) -> BillingOperationResult:
        customer_id = self._require_customer(user)
        try:
            if not payment_method_id:
                setup_intent = await self._run(
                    stripe.SetupIntent.create,
                    customer=customer_id,
                    usage="off_session",
                )
                return BillingOperationResult(
                    succeeded=True,
                    internal_data={"client_secret": _get(setup_intent, "client_secret")},
                )
            await self._run(stripe.PaymentMethod.attach, payment_method_id, customer=customer_id)
            await self._run(
                stripe.Customer.modify,
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )
        except stripe.StripeError as exc:
            logger.warning(
                "Stripe payment method setup failed",
                user_id=str(user.id),
                payment_method_id=payment_method_id,
                error=str(exc),
            )
            return BillingOperationResult(succeeded=False, error=str(exc))
        return BillingOperationResult(succeeded=True)

    async def list_payment_methods(self, user: User) -> list[BillingPaymentMethod]:
        customer_id = self._require_customer(user)
        customer = await self._retrieve_customer(customer_id)
        invoice_settings = _get(customer, "invoice_settings", {}) or {}
        default_id = _get(invoice_settings, "default_payment_method")
        response = await self._run(stripe.PaymentMethod.list, customer=customer_id, type="card")
        methods: list[BillingPaymentMethod] = []
        for item in _get(response, "data", []) or []:
            card = _get(item, "card", {}) or {}
            exp_month = _get(card, "exp_month")
            exp_year = _get(card, "exp_year")
            methods.append(
                BillingPaymentMethod(
                    payment_method_id=str(_get(item, "id")),
                    brand=_get(card, "brand"),
                    last4=_get(card, "last4"),
                    expiring_on=f"{exp_year}-{int(exp_month):02d}" if exp_month and exp_year else None,
                    is_default=_get(item, "id") == default_id,
                )
            )
        return methods

    async def delete_payment_method(self, user: User, payment_method_id: str) -> BillingOperationResult:
        self._require_customer(user)
        try:
            await self._run(stripe.PaymentMethod.detach, payment_method_id)
        except stripe.StripeError as exc:
            return BillingOperationResult(succeeded=False, error=str(exc))
        return BillingOperationResult(succeeded=True)


__all__ = ["StripeBillingProvider"]
