from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from voltledger_billing.models.invoice import BillingInvoice, BillingInvoiceStatusEnum
from voltledger_billing.models.user import ProviderLink, User, UserStatusEnum
from voltledger_billing.services.billing.store import InvoiceFilter

BASE = datetime(2026, 9, 1, tzinfo=timezone.utc)


async def _seed_invoices(session_factory) -> User:
    user = User(id=uuid4(), email="store@example.com")
    async with session_factory() as session:
        session.add(user)
        await session.flush()
        # Inserted out of order on purpose
        for offset, status in ((3, "open"), (1, "draft"), (2, "open"), (40, "open")):
            session.add(
                BillingInvoice(
                    id=uuid4(),
                    invoice_id=f"in_day_{offset}",
                    user_id=user.id,
                    status=BillingInvoiceStatusEnum(status),
                    sessions=[],
                    created_on=BASE + timedelta(days=offset),
                )
            )
        await session.commit()
    return user


@pytest.mark.asyncio
async def test_query_invoices_sorted_oldest_first_within_window(session_factory, ledger_store):
    user = await _seed_invoices(session_factory)
    invoice_filter = InvoiceFilter(
        start_date_time=BASE,
        end_date_time=BASE + timedelta(days=30),
        statuses=(BillingInvoiceStatusEnum.OPEN,),
    )

    invoices = await ledger_store.query_invoices(invoice_filter)

    assert [invoice.invoice_id for invoice in invoices] == ["in_day_2", "in_day_3"]
    assert invoices[0].user.email == user.email


@pytest.mark.asyncio
async def test_query_invoices_paginates_with_skip_and_limit(session_factory, ledger_store):
    await _seed_invoices(session_factory)

    first = await ledger_store.query_invoices(InvoiceFilter(), limit=2, skip=0)
    second = await ledger_store.query_invoices(InvoiceFilter(), limit=2, skip=2)

    assert [invoice.invoice_id for invoice in first] == ["in_day_1", "in_day_2"]
    assert [invoice.invoice_id for invoice in second] == ["in_day_3", "in_day_40"]


@pytest.mark.asyncio
async def test_account_link_round_trip(session_factory, ledger_store):
    user = User(id=uuid4(), email="linked@example.com")
    async with session_factory() as session:
        session.add(user)
        await session.commit()

    await ledger_store.save_account_link(user.id, ProviderLink(customer_id="cus_9", live_mode=False))
    [with_test_data] = await ledger_store.query_accounts(
        statuses=[UserStatusEnum.ACTIVE],
        with_test_billing_data=True,
    )
    assert with_test_data.billing_customer_id == "cus_9"

    await ledger_store.save_account_link(user.id, None)
    assert await ledger_store.query_accounts(with_test_billing_data=True) == []


@pytest.mark.asyncio
async def test_missing_transaction_returns_none(ledger_store):
    assert await ledger_store.get_transaction(404) is None
