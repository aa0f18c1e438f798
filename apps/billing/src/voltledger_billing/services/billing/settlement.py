"""Periodic, paginated settlement of outstanding invoices."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from loguru import logger

from voltledger_billing.models.invoice import BillingInvoice, BillingInvoiceStatusEnum
from voltledger_billing.schemas.billing import TransactionBillingData
from voltledger_billing.services.billing.exceptions import BillingAction, BillingError
from voltledger_billing.services.billing.notifications import NotificationBridge
from voltledger_billing.services.billing.providers.base import BillingProvider
from voltledger_billing.services.billing.store import InvoiceFilter, LedgerStore

if TYPE_CHECKING:
    from voltledger_billing.core.settings import Settings

FORCED_PAGE_SIZE = 1


@dataclass(slots=True)
class PeriodicQueryWindow:
    """Invoices considered by one run, always walked oldest first."""

    start_date_time: datetime
    end_date_time: datetime
    statuses: tuple[BillingInvoiceStatusEnum, ...]
    limit: int

    def as_filter(self) -> InvoiceFilter:
        return InvoiceFilter(
            start_date_time=self.start_date_time,
            end_date_time=self.end_date_time,
            statuses=self.statuses,
        )


@dataclass(slots=True)
class SettlementSummary:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    compensated: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values; everything is persisted in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SettlementBatchRunner:
    """Drive DRAFT/OPEN invoices towards a terminal state through the provider.

    The scan filters on invoice status while settling changes that very status.
    When a settled invoice leaves the filter, every following row moves up one
    position, so the running ``skip`` offset is decremented once for that
    invoice. Pages are therefore processed strictly one after the other.
    """

    def __init__(
        self,
        provider: BillingProvider,
        store: LedgerStore,
        *,
        notification_bridge: NotificationBridge | None = None,
        periodic_billing_allowed: bool = False,
        batch_size: int = 1000,
        timezone_name: str = "UTC",
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._provider = provider
        self._store = store
        self._notification_bridge = notification_bridge
        self._periodic_billing_allowed = periodic_billing_allowed
        self._batch_size = batch_size
        self._timezone = ZoneInfo(timezone_name)

    @classmethod
    def from_settings(
        cls,
        provider: BillingProvider,
        store: LedgerStore,
        settings: "Settings",
        *,
        notification_bridge: NotificationBridge | None = None,
    ) -> "SettlementBatchRunner":
        return cls(
            provider,
            store,
            notification_bridge=notification_bridge,
            periodic_billing_allowed=settings.billing_periodic_billing_allowed,
            batch_size=settings.billing_batch_page_size,
            timezone_name=settings.billing_timezone,
        )

    @property
    def scope_statuses(self) -> tuple[BillingInvoiceStatusEnum, ...]:
        if self._periodic_billing_allowed:
            # Finalize drafts and retry payment of unpaid invoices
            return (BillingInvoiceStatusEnum.DRAFT, BillingInvoiceStatusEnum.OPEN)
        return (BillingInvoiceStatusEnum.OPEN,)

    def is_out_of_periodic_scope(self, status: BillingInvoiceStatusEnum | str) -> bool:
        return BillingInvoiceStatusEnum(status) not in self.scope_statuses

    def build_query_window(
        self,
        force_operation: bool,
        *,
        now: datetime | None = None,
    ) -> PeriodicQueryWindow:
        local_now = (now or datetime.now(timezone.utc)).astimezone(self._timezone)
        start_of_today = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        if force_operation:
            # Today only, one invoice per page to exercise the pagination
            start = start_of_today
            end = start_of_today.replace(hour=23, minute=59, second=59, microsecond=999999)
            limit = FORCED_PAGE_SIZE
        else:
            first_of_month = start_of_today.replace(day=1)
            start = (first_of_month - timedelta(days=1)).replace(day=1)
            end = first_of_month - timedelta(microseconds=1)
            limit = self._batch_size
        return PeriodicQueryWindow(
            start_date_time=start.astimezone(timezone.utc),
            end_date_time=end.astimezone(timezone.utc),
            statuses=self.scope_statuses,
            limit=limit,
        )

    def _is_created_same_day(self, invoice: BillingInvoice, now: datetime) -> bool:
        created_on = _as_utc(invoice.created_on).astimezone(self._timezone)
        return created_on.date() == now.astimezone(self._timezone).date()

    async def run_periodic_settlement(
        self,
        force_operation: bool = False,
        *,
        now: datetime | None = None,
    ) -> SettlementSummary:
        """Sweep the query window once; only the connectivity check may raise."""

        await self._provider.check_connection()

        current_time = now or datetime.now(timezone.utc)
        window = self.build_query_window(force_operation, now=current_time)
        invoice_filter = window.as_filter()
        summary = SettlementSummary()
        logger.info(
            "Periodic settlement started",
            action=BillingAction.PERFORM_OPERATIONS.value,
            forced=force_operation,
            window_start=window.start_date_time.isoformat(),
            window_end=window.end_date_time.isoformat(),
            statuses=[status.value for status in window.statuses],
            page_size=window.limit,
        )

        skip = 0
        while True:
            invoices = await self._store.query_invoices(invoice_filter, limit=window.limit, skip=skip)
            if not invoices:
                break
            skip += window.limit
            for invoice in invoices:
                try:
                    if self.is_out_of_periodic_scope(invoice.status):
                        summary.skipped += 1
                        continue
                    if not force_operation and self._is_created_same_day(invoice, current_time):
                        summary.succeeded += 1
                        logger.warning(
                            "Invoice is too new - operation has been skipped",
                            action=BillingAction.PERFORM_OPERATIONS.value,
                            invoice_id=str(invoice.id),
                            user_id=str(invoice.user_id),
                        )
                        continue
                    settled = await self.settle_invoice(invoice)
                    if self.is_out_of_periodic_scope(settled.status):
                        skip -= 1
                        summary.compensated += 1
                    summary.succeeded += 1
                    logger.info(
                        "Successfully charged invoice",
                        action=BillingAction.PERFORM_OPERATIONS.value,
                        invoice_id=str(invoice.id),
                        user_id=str(invoice.user_id),
                        status=BillingInvoiceStatusEnum(settled.status).value,
                    )
                except Exception:
                    summary.failed += 1
                    logger.exception(
                        "Failed to charge invoice",
                        action=BillingAction.PERFORM_OPERATIONS.value,
                        invoice_id=str(invoice.id),
                        user_id=str(invoice.user_id),
                    )

        logger.info(
            "Periodic settlement completed",
            action=BillingAction.PERFORM_OPERATIONS.value,
            forced=force_operation,
            **summary.as_dict(),
        )
        return summary

    async def settle_invoice(self, invoice: BillingInvoice) -> BillingInvoice:
        """Settle one invoice and mirror its new state onto its sessions."""

        if invoice.sessions is None:
            raise BillingError(
                f"Unexpected situation - invoice '{invoice.id}' has no sessions attached to it",
                action=BillingAction.CHARGE_INVOICE,
            )
        previous_status = BillingInvoiceStatusEnum(invoice.status)
        result = await self._provider.settle_invoice(invoice)

        invoice.status = result.status
        invoice.number = result.number or invoice.number
        invoice.amount = result.amount
        invoice.currency = result.currency
        invoice.live_mode = result.live_mode
        invoice.pay_invoice_url = result.pay_invoice_url or invoice.pay_invoice_url
        await self._store.save_invoice(invoice)
        if result.payment_error:
            logger.warning(
                "Invoice payment attempt failed",
                action=BillingAction.CHARGE_INVOICE.value,
                invoice_id=str(invoice.id),
                user_id=str(invoice.user_id),
                error=result.payment_error,
            )

        await self.update_transactions_billing_data(invoice)

        if self._notification_bridge is not None and result.status != previous_status:
            self._notification_bridge.notify_new_invoice(invoice)
        return invoice

    async def update_transactions_billing_data(self, invoice: BillingInvoice) -> None:
        """Refresh the mirrored invoice status of every session concurrently."""

        await asyncio.gather(
            *(
                self._update_transaction_billing_data(invoice, transaction_id)
                for transaction_id in invoice.transaction_ids
            )
        )

    async def _update_transaction_billing_data(self, invoice: BillingInvoice, transaction_id: int) -> None:
        try:
            transaction = await self._store.get_transaction(transaction_id)
            billing_data = TransactionBillingData.from_json(
                transaction.billing_data if transaction is not None else None
            )
            if billing_data is None or billing_data.stop is None:
                return
            billing_data.stop.invoice_status = BillingInvoiceStatusEnum(invoice.status)
            billing_data.stop.invoice_number = invoice.number
            billing_data.last_update = datetime.now(timezone.utc)
            await self._store.save_transaction_billing_data(transaction_id, billing_data)
        except Exception:
            logger.exception(
                "Failed to update transaction billing data",
                action=BillingAction.CHARGE_INVOICE.value,
                invoice_id=str(invoice.id),
                transaction_id=transaction_id,
                user_id=str(invoice.user_id),
            )
