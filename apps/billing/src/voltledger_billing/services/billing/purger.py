"""Removal of test-mode billing artefacts before switching to live mode."""

from __future__ import annotations

import asyncio

from loguru import logger

from voltledger_billing.models.invoice import BillingInvoice
from voltledger_billing.models.user import User, UserStatusEnum
from voltledger_billing.schemas.billing import TransactionBillingData
from voltledger_billing.services.billing.exceptions import BillingAction, BillingPreconditionError
from voltledger_billing.services.billing.store import InvoiceFilter, LedgerStore


class BillingTestDataPurger:
    """Delete test invoices and unlink test customers, one record at a time.

    A failing record is logged and counted; the sweep always goes on with the
    next one. Live data is refused, never removed.
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    async def purge_all(self) -> dict[str, int]:
        logger.info("Billing test data cleanup started", action=BillingAction.TEST_DATA_CLEANUP.value)
        summary = {"invoices_cleared": 0, "invoices_failed": 0, "users_cleared": 0, "users_failed": 0}

        invoices = await self._store.query_invoices(InvoiceFilter(live_mode=False))
        for invoice in invoices:
            try:
                await self.clear_invoice_test_data(invoice)
                summary["invoices_cleared"] += 1
            except Exception:
                summary["invoices_failed"] += 1
                logger.exception(
                    "Failed to clear invoice test data",
                    action=BillingAction.TEST_DATA_CLEANUP.value,
                    invoice_id=str(invoice.id),
                    user_id=str(invoice.user_id),
                )

        users = await self._store.query_accounts(
            statuses=[UserStatusEnum.ACTIVE],
            with_test_billing_data=True,
        )
        for user in users:
            try:
                await self.clear_user_test_data(user)
                summary["users_cleared"] += 1
            except Exception:
                summary["users_failed"] += 1
                logger.exception(
                    "Failed to clear user test data",
                    action=BillingAction.TEST_DATA_CLEANUP.value,
                    user_id=str(user.id),
                )

        logger.info(
            "Billing test data cleanup completed",
            action=BillingAction.TEST_DATA_CLEANUP.value,
            **summary,
        )
        return summary

    async def clear_invoice_test_data(self, invoice: BillingInvoice) -> None:
        if invoice.live_mode:
            raise BillingPreconditionError(
                f"Unexpected situation - attempt to delete live invoice '{invoice.id}'",
                action=BillingAction.TEST_DATA_CLEANUP,
            )
        await asyncio.gather(
            *(self._reset_transaction(invoice, transaction_id) for transaction_id in invoice.transaction_ids)
        )
        await self._store.delete_invoice(invoice.id)

    async def clear_user_test_data(self, user: User) -> None:
        if user.billing_live_mode:
            raise BillingPreconditionError(
                f"Unexpected situation - attempt to clear live billing data of user '{user.id}'",
                action=BillingAction.TEST_DATA_CLEANUP,
            )
        await self._store.save_account_link(user.id, None)
        user.billing_customer_id = None
        user.billing_live_mode = None

    async def _reset_transaction(self, invoice: BillingInvoice, transaction_id: int) -> None:
        try:
            await self._store.save_transaction_billing_data(transaction_id, TransactionBillingData.unbilled())
        except Exception:
            logger.exception(
                "Failed to reset transaction billing data",
                action=BillingAction.TEST_DATA_CLEANUP.value,
                invoice_id=str(invoice.id),
                transaction_id=transaction_id,
            )
