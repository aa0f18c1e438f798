"""Ledger store interface and its SQLAlchemy-backed implementation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol, Sequence
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from voltledger_billing.models.invoice import BillingInvoice, BillingInvoiceStatusEnum
from voltledger_billing.models.transaction import Transaction
from voltledger_billing.models.user import ProviderLink, User, UserStatusEnum
from voltledger_billing.schemas.billing import TransactionBillingData

SessionFactory = Callable[[], AsyncSession]


@dataclass(slots=True)
class InvoiceFilter:
    start_date_time: datetime | None = None
    end_date_time: datetime | None = None
    statuses: Sequence[BillingInvoiceStatusEnum] | None = None
    live_mode: bool | None = None
    user_id: UUID | None = None


class LedgerStore(Protocol):
    """Read/write access to invoices, users and transactions."""

    async def query_invoices(
        self,
        invoice_filter: InvoiceFilter,
        *,
        limit: int | None = None,
        skip: int = 0,
    ) -> list[BillingInvoice]:
        """Return invoices sorted by creation date, oldest first."""

    async def save_invoice(self, invoice: BillingInvoice) -> None:
        ...

    async def delete_invoice(self, invoice_id: UUID) -> None:
        ...

    async def get_transaction(self, transaction_id: int) -> Transaction | None:
        ...

    async def save_transaction_billing_data(
        self,
        transaction_id: int,
        billing_data: TransactionBillingData | None,
    ) -> None:
        ...

    async def save_account_link(self, user_id: UUID, link: ProviderLink | None) -> None:
        ...

    async def query_accounts(
        self,
        *,
        statuses: Sequence[UserStatusEnum] | None = None,
        with_test_billing_data: bool = False,
    ) -> list[User]:
        ...


class SqlAlchemyLedgerStore:
    """Ledger store opening one short-lived session per operation.

    Separate sessions let concurrent coroutines (for instance the per-session
    billing data refresh of one invoice) write without sharing an AsyncSession.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def query_invoices(
        self,
        invoice_filter: InvoiceFilter,
        *,
        limit: int | None = None,
        skip: int = 0,
    ) -> list[BillingInvoice]:
        stmt = select(BillingInvoice).options(selectinload(BillingInvoice.user))
        if invoice_filter.start_date_time is not None:
            stmt = stmt.where(BillingInvoice.created_on >= invoice_filter.start_date_time)
        if invoice_filter.end_date_time is not None:
            stmt = stmt.where(BillingInvoice.created_on <= invoice_filter.end_date_time)
        if invoice_filter.statuses is not None:
            stmt = stmt.where(BillingInvoice.status.in_(tuple(invoice_filter.statuses)))
        if invoice_filter.live_mode is not None:
            stmt = stmt.where(BillingInvoice.live_mode.is_(invoice_filter.live_mode))
        if invoice_filter.user_id is not None:
            stmt = stmt.where(BillingInvoice.user_id == invoice_filter.user_id)
        stmt = stmt.order_by(BillingInvoice.created_on.asc(), BillingInvoice.id.asc()).offset(max(0, skip))
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def save_invoice(self, invoice: BillingInvoice) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(BillingInvoice)
                .where(BillingInvoice.id == invoice.id)
                .values(
                    status=invoice.status,
                    number=invoice.number,
                    amount=invoice.amount,
                    currency=invoice.currency,
                    live_mode=invoice.live_mode,
                    pay_invoice_url=invoice.pay_invoice_url,
                    sessions=invoice.sessions,
                )
            )
            await session.commit()

    async def delete_invoice(self, invoice_id: UUID) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(BillingInvoice).where(BillingInvoice.id == invoice_id))
            await session.commit()

    async def get_transaction(self, transaction_id: int) -> Transaction | None:
        async with self._session_factory() as session:
            return await session.get(Transaction, transaction_id)

    async def save_transaction_billing_data(
        self,
        transaction_id: int,
        billing_data: TransactionBillingData | None,
    ) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Transaction)
                .where(Transaction.id == transaction_id)
                .values(billing_data=billing_data.to_json() if billing_data else None)
            )
            await session.commit()

    async def save_account_link(self, user_id: UUID, link: ProviderLink | None) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(
                    billing_customer_id=link.customer_id if link else None,
                    billing_live_mode=link.live_mode if link else None,
                    billing_last_changed_on=datetime.now(timezone.utc),
                )
            )
            await session.commit()

    async def query_accounts(
        self,
        *,
        statuses: Sequence[UserStatusEnum] | None = None,
        with_test_billing_data: bool = False,
    ) -> list[User]:
        stmt = select(User)
        if statuses is not None:
            stmt = stmt.where(User.status.in_([status.value for status in statuses]))
        if with_test_billing_data:
            stmt = stmt.where(
                User.billing_customer_id.isnot(None),
                or_(User.billing_live_mode.is_(False), User.billing_live_mode.is_(None)),
            )
        async with self._session_factory() as session:
            result = await session.execute(stmt.order_by(User.created_at.asc()))
            return list(result.scalars().all())
