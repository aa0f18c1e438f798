"""Format and dispatch "new invoice" notices without waiting for delivery."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Protocol

from babel.numbers import format_currency
from loguru import logger

from voltledger_billing.models.invoice import BillingInvoice, BillingInvoiceStatusEnum
from voltledger_billing.models.user import User
from voltledger_billing.services.billing.exceptions import (
    BillingAction,
    BillingPreconditionError,
)

_NOTIFIABLE_STATUSES = frozenset({BillingInvoiceStatusEnum.OPEN, BillingInvoiceStatusEnum.PAID})


@dataclass(slots=True)
class NewInvoiceNotification:
    invoice_id: str
    invoice_number: str | None
    invoice_status: str
    invoice_amount: str
    pay_invoice_url: str
    invoice_download_url: str
    dashboard_invoice_url: str
    dashboard_url: str

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class InvoiceNotifier(Protocol):
    async def send_new_invoice(self, user: User, payload: NewInvoiceNotification) -> None:
        ...


def format_invoice_amount(amount: int, currency: str, locale: str | None) -> str:
    """Format a minor-unit amount with the currency conventions of ``locale``."""

    value = Decimal(int(amount)) / Decimal(100)
    babel_locale = (locale or "en_US").replace("-", "_")
    return format_currency(value, currency.upper(), locale=babel_locale)


class NotificationBridge:
    """Submit invoice notifications as background tasks.

    Dispatch failures surface through ``_on_dispatched`` (logged), never through
    the caller. Submitted tasks are independent from the caller's task, so
    cancelling a settlement run leaves queued notices running.
    """

    def __init__(self, notifier: InvoiceNotifier, *, frontend_url: str) -> None:
        self._notifier = notifier
        self._frontend_url = frontend_url.rstrip("/")
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def notify_new_invoice(self, invoice: BillingInvoice) -> bool:
        try:
            status = BillingInvoiceStatusEnum(invoice.status)
            if status not in _NOTIFIABLE_STATUSES:
                # Drafts and closed invoices are not meaningful to the end user yet
                return True
            user = invoice.user
            if user is None:
                raise BillingPreconditionError(
                    f"Invoice '{invoice.id}' has no user attached",
                    action=BillingAction.NEW_INVOICE_NOTIFICATION,
                )
            payload = self._build_payload(invoice, status, user)
            task = asyncio.get_running_loop().create_task(self._dispatch(user, payload))
        except Exception:
            logger.exception(
                "Failed to send notification for invoice",
                action=BillingAction.NEW_INVOICE_NOTIFICATION.value,
                invoice_id=str(invoice.id),
                user_id=str(invoice.user_id),
            )
            return False

        self._pending.add(task)
        task.add_done_callback(self._on_dispatched)
        return True

    async def drain(self) -> None:
        """Wait for every submitted notification to finish."""

        if self._pending:
            await asyncio.gather(*tuple(self._pending), return_exceptions=True)

    def _build_payload(
        self,
        invoice: BillingInvoice,
        status: BillingInvoiceStatusEnum,
        user: User,
    ) -> NewInvoiceNotification:
        return NewInvoiceNotification(
            invoice_id=str(invoice.id),
            invoice_number=invoice.number,
            invoice_status=status.value,
            invoice_amount=format_invoice_amount(invoice.amount, invoice.currency, user.locale),
            # An empty url hides the "pay" button
            pay_invoice_url=(
                invoice.pay_invoice_url or ""
                if status == BillingInvoiceStatusEnum.OPEN
                else ""
            ),
            invoice_download_url=f"{self._frontend_url}/billing/invoices/{invoice.id}/download",
            dashboard_invoice_url=f"{self._frontend_url}/billing/invoices",
            dashboard_url=self._frontend_url,
        )

    async def _dispatch(self, user: User, payload: NewInvoiceNotification) -> None:
        await self._notifier.send_new_invoice(user, payload)
        logger.info(
            "New invoice notification dispatched",
            action=BillingAction.NEW_INVOICE_NOTIFICATION.value,
            invoice_id=payload.invoice_id,
            user_id=str(user.id),
        )

    def _on_dispatched(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(
                "New invoice notification delivery failed",
                action=BillingAction.NEW_INVOICE_NOTIFICATION.value,
                error=str(exc),
            )
