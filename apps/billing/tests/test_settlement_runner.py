from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from voltledger_billing.models.invoice import BillingInvoice, BillingInvoiceStatusEnum
from voltledger_billing.models.transaction import Transaction
from voltledger_billing.models.user import User
from voltledger_billing.schemas.billing import BillingDataStop, BillingStatusEnum, TransactionBillingData
from voltledger_billing.services.billing.exceptions import BillingConnectionError
from voltledger_billing.services.billing.notifications import NotificationBridge
from voltledger_billing.services.billing.providers.base import ProviderInvoice
from voltledger_billing.services.billing.settlement import SettlementBatchRunner

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)
LAST_MONTH = datetime(2026, 9, 5, 8, 0, tzinfo=timezone.utc)


class SettlingProvider:
    """Moves DRAFT/OPEN invoices to PAID unless told otherwise."""

    def __init__(self, *, declined: set[str] | None = None, failing: set[str] | None = None) -> None:
        self.declined = declined or set()
        self.failing = failing or set()
        self.settled: list[str] = []
        self.connection_error: Exception | None = None

    async def check_connection(self) -> None:
        if self.connection_error is not None:
            raise self.connection_error

    async def settle_invoice(self, invoice: BillingInvoice) -> ProviderInvoice:
        self.settled.append(invoice.invoice_id)
        if invoice.invoice_id in self.failing:
            raise RuntimeError(f"provider rejected {invoice.invoice_id}")
        if invoice.invoice_id in self.declined:
            status = BillingInvoiceStatusEnum.OPEN
            error = "Your card was declined."
        else:
            status = BillingInvoiceStatusEnum.PAID
            error = None
        return ProviderInvoice(
            invoice_id=invoice.invoice_id,
            status=status,
            number=f"N-{invoice.invoice_id}",
            amount=invoice.amount,
            currency=invoice.currency,
            live_mode=False,
            pay_invoice_url=f"https://pay.example.com/{invoice.invoice_id}",
            payment_error=error,
        )


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def send_new_invoice(self, user, payload) -> None:
        self.calls.append((user.email, payload.invoice_status))


async def _seed_user(session_factory) -> User:
    async with session_factory() as session:
        user = User(id=uuid4(), email=f"{uuid4().hex[:8]}@example.com", billing_customer_id="cus_1")
        session.add(user)
        await session.commit()
        return user


async def _seed_invoice(
    session_factory,
    user: User,
    invoice_id: str,
    *,
    status: BillingInvoiceStatusEnum = BillingInvoiceStatusEnum.OPEN,
    created_on: datetime = LAST_MONTH,
    sessions: list[dict] | None = None,
) -> BillingInvoice:
    async with session_factory() as session:
        invoice = BillingInvoice(
            id=uuid4(),
            invoice_id=invoice_id,
            user_id=user.id,
            status=status,
            amount=1050,
            currency="EUR",
            sessions=[] if sessions is None else sessions,
            created_on=created_on,
        )
        session.add(invoice)
        await session.commit()
        return invoice


async def _statuses(session_factory) -> dict[str, BillingInvoiceStatusEnum]:
    async with session_factory() as session:
        rows = (await session.execute(select(BillingInvoice))).scalars().all()
        return {row.invoice_id: row.status for row in rows}


def _runner(provider, ledger_store, **kwargs) -> SettlementBatchRunner:
    return SettlementBatchRunner(provider, ledger_store, **kwargs)


@pytest.mark.asyncio
async def test_open_invoices_settled_and_drafts_left_alone(session_factory, ledger_store):
    user = await _seed_user(session_factory)
    await _seed_invoice(session_factory, user, "in_draft", status=BillingInvoiceStatusEnum.DRAFT)
    await _seed_invoice(session_factory, user, "in_open_1", created_on=LAST_MONTH + timedelta(days=1))
    await _seed_invoice(session_factory, user, "in_open_2", created_on=LAST_MONTH + timedelta(days=2))

    provider = SettlingProvider()
    summary = await _runner(provider, ledger_store, batch_size=1).run_periodic_settlement(now=NOW)

    assert summary.succeeded == 2
    assert summary.failed == 0
    assert summary.compensated == 2
    assert provider.settled == ["in_open_1", "in_open_2"]
    statuses = await _statuses(session_factory)
    assert statuses["in_draft"] == BillingInvoiceStatusEnum.DRAFT
    assert statuses["in_open_1"] == BillingInvoiceStatusEnum.PAID
    assert statuses["in_open_2"] == BillingInvoiceStatusEnum.PAID


@pytest.mark.asyncio
async def test_pagination_visits_every_invoice_when_settled_rows_leave_the_filter(
    session_factory, ledger_store
):
    user = await _seed_user(session_factory)
    for index in range(5):
        await _seed_invoice(
            session_factory,
            user,
            f"in_{index}",
            created_on=LAST_MONTH + timedelta(hours=index),
        )

    provider = SettlingProvider()
    summary = await _runner(provider, ledger_store, batch_size=2).run_periodic_settlement(now=NOW)

    assert provider.settled == [f"in_{index}" for index in range(5)]
    assert summary.succeeded == 5
    assert summary.compensated == 5
    assert set((await _statuses(session_factory)).values()) == {BillingInvoiceStatusEnum.PAID}


@pytest.mark.asyncio
async def test_declined_invoice_stays_in_scope_without_compensation(session_factory, ledger_store):
    user = await _seed_user(session_factory)
    for index in range(3):
        await _seed_invoice(
            session_factory,
            user,
            f"in_{index}",
            created_on=LAST_MONTH + timedelta(hours=index),
        )

    provider = SettlingProvider(declined={"in_0"})
    summary = await _runner(provider, ledger_store, batch_size=1).run_periodic_settlement(now=NOW)

    assert provider.settled == ["in_0", "in_1", "in_2"]
    assert summary.succeeded == 3
    assert summary.compensated == 2
    statuses = await _statuses(session_factory)
    assert statuses["in_0"] == BillingInvoiceStatusEnum.OPEN


@pytest.mark.asyncio
async def test_failing_invoice_is_counted_and_the_batch_continues(session_factory, ledger_store):
    user = await _seed_user(session_factory)
    for index in range(3):
        await _seed_invoice(
            session_factory,
            user,
            f"in_{index}",
            created_on=LAST_MONTH + timedelta(hours=index),
        )

    provider = SettlingProvider(failing={"in_1"})
    summary = await _runner(provider, ledger_store, batch_size=1).run_periodic_settlement(now=NOW)

    assert summary.failed == 1
    assert summary.succeeded == 2
    assert provider.settled == ["in_0", "in_1", "in_2"]
    statuses = await _statuses(session_factory)
    assert statuses["in_1"] == BillingInvoiceStatusEnum.OPEN


@pytest.mark.asyncio
async def test_invoice_without_sessions_fails_before_reaching_the_provider(session_factory, ledger_store):
    user = await _seed_user(session_factory)
    async with session_factory() as session:
        session.add(
            BillingInvoice(
                id=uuid4(),
                invoice_id="in_orphan",
                user_id=user.id,
                status=BillingInvoiceStatusEnum.OPEN,
                sessions=None,
                created_on=LAST_MONTH,
            )
        )
        await session.commit()

    provider = SettlingProvider()
    summary = await _runner(provider, ledger_store).run_periodic_settlement(now=NOW)

    assert summary.failed == 1
    assert summary.succeeded == 0
    assert provider.settled == []


class SinglePageStore:
    """Returns the given invoices on the first page only."""

    def __init__(self, invoices: list[BillingInvoice]) -> None:
        self._invoices = invoices
        self.saved: list[str] = []

    async def query_invoices(self, invoice_filter, *, limit: int, skip: int = 0) -> list[BillingInvoice]:
        return list(self._invoices) if skip == 0 else []

    async def save_invoice(self, invoice: BillingInvoice) -> None:
        self.saved.append(invoice.invoice_id)


@pytest.mark.asyncio
async def test_invoice_created_today_is_counted_without_settling():
    invoice = BillingInvoice(
        id=uuid4(),
        invoice_id="in_fresh",
        user_id=uuid4(),
        status=BillingInvoiceStatusEnum.OPEN,
        amount=1050,
        currency="EUR",
        sessions=[{"transaction_id": 1}],
        created_on=NOW - timedelta(hours=3),
    )
    provider = SettlingProvider()
    store = SinglePageStore([invoice])

    summary = await _runner(provider, store).run_periodic_settlement(now=NOW)

    assert summary.succeeded == 1
    assert summary.failed == 0
    assert summary.compensated == 0
    assert provider.settled == []
    assert store.saved == []


@pytest.mark.asyncio
async def test_connectivity_failure_aborts_before_any_invoice(session_factory, ledger_store):
    user = await _seed_user(session_factory)
    await _seed_invoice(session_factory, user, "in_0")

    provider = SettlingProvider()
    provider.connection_error = BillingConnectionError("stripe unreachable")

    with pytest.raises(BillingConnectionError):
        await _runner(provider, ledger_store).run_periodic_settlement(now=NOW)
    assert provider.settled == []


@pytest.mark.asyncio
async def test_forced_run_settles_todays_invoices_one_per_page(session_factory, ledger_store):
    user = await _seed_user(session_factory)
    await _seed_invoice(session_factory, user, "in_old")
    await _seed_invoice(session_factory, user, "in_today_1", created_on=NOW - timedelta(hours=2))
    await _seed_invoice(session_factory, user, "in_today_2", created_on=NOW - timedelta(hours=1))

    provider = SettlingProvider()
    summary = await _runner(provider, ledger_store).run_periodic_settlement(True, now=NOW)

    assert provider.settled == ["in_today_1", "in_today_2"]
    assert summary.succeeded == 2
    assert summary.compensated == 2
    assert (await _statuses(session_factory))["in_old"] == BillingInvoiceStatusEnum.OPEN


@pytest.mark.asyncio
async def test_drafts_are_finalized_when_periodic_billing_is_allowed(session_factory, ledger_store):
    user = await _seed_user(session_factory)
    await _seed_invoice(session_factory, user, "in_draft", status=BillingInvoiceStatusEnum.DRAFT)

    provider = SettlingProvider()
    summary = await _runner(
        provider,
        ledger_store,
        periodic_billing_allowed=True,
    ).run_periodic_settlement(now=NOW)

    assert provider.settled == ["in_draft"]
    assert summary.succeeded == 1
    assert (await _statuses(session_factory))["in_draft"] == BillingInvoiceStatusEnum.PAID


@pytest.mark.asyncio
async def test_settlement_mirrors_invoice_state_onto_sessions(session_factory, ledger_store):
    user = await _seed_user(session_factory)
    billing_data = TransactionBillingData(
        with_billing_active=True,
        stop=BillingDataStop(
            status=BillingStatusEnum.BILLED,
            invoice_id="in_0",
            invoice_status=BillingInvoiceStatusEnum.OPEN,
        ),
    )
    async with session_factory() as session:
        session.add_all(
            [
                Transaction(id=101, user_id=user.id, timestamp=LAST_MONTH, billing_data=billing_data.to_json()),
                Transaction(id=102, user_id=user.id, timestamp=LAST_MONTH, billing_data=billing_data.to_json()),
            ]
        )
        await session.commit()
    await _seed_invoice(
        session_factory,
        user,
        "in_0",
        sessions=[{"transaction_id": 101}, {"transaction_id": 102}, {"transaction_id": 999}],
    )

    summary = await _runner(SettlingProvider(), ledger_store).run_periodic_settlement(now=NOW)

    assert summary.succeeded == 1
    for transaction_id in (101, 102):
        transaction = await ledger_store.get_transaction(transaction_id)
        refreshed = TransactionBillingData.from_json(transaction.billing_data)
        assert refreshed.stop.invoice_status == BillingInvoiceStatusEnum.PAID
        assert refreshed.stop.invoice_number == "N-in_0"


@pytest.mark.asyncio
async def test_status_change_triggers_invoice_notification(session_factory, ledger_store):
    user = await _seed_user(session_factory)
    await _seed_invoice(session_factory, user, "in_0")
    notifier = RecordingNotifier()
    bridge = NotificationBridge(notifier, frontend_url="https://app.example.com")

    await _runner(SettlingProvider(), ledger_store, notification_bridge=bridge).run_periodic_settlement(now=NOW)
    await bridge.drain()

    assert notifier.calls == [(user.email, "paid")]


@pytest.mark.asyncio
async def test_unchanged_status_does_not_notify(session_factory, ledger_store):
    user = await _seed_user(session_factory)
    await _seed_invoice(session_factory, user, "in_0")
    notifier = RecordingNotifier()
    bridge = NotificationBridge(notifier, frontend_url="https://app.example.com")

    await _runner(
        SettlingProvider(declined={"in_0"}),
        ledger_store,
        notification_bridge=bridge,
    ).run_periodic_settlement(now=NOW)
    await bridge.drain()

    assert notifier.calls == []


def test_previous_month_window_follows_configured_timezone():
    runner = SettlementBatchRunner(SettlingProvider(), None, timezone_name="Europe/Paris")  # type: ignore[arg-type]

    window = runner.build_query_window(False, now=datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc))

    assert window.start_date_time == datetime(2026, 1, 31, 23, 0, tzinfo=timezone.utc)
    assert window.end_date_time == datetime(2026, 2, 28, 22, 59, 59, 999999, tzinfo=timezone.utc)
    assert window.statuses == (BillingInvoiceStatusEnum.OPEN,)
    assert window.limit == 1000


def test_forced_window_covers_today_with_single_invoice_pages():
    runner = SettlementBatchRunner(
        SettlingProvider(),
        None,  # type: ignore[arg-type]
        periodic_billing_allowed=True,
        batch_size=50,
    )

    window = runner.build_query_window(True, now=NOW)

    assert window.start_date_time == datetime(2026, 10, 16, 0, 0, tzinfo=timezone.utc)
    assert window.end_date_time == datetime(2026, 10, 16, 23, 59, 59, 999999, tzinfo=timezone.utc)
    assert window.statuses == (BillingInvoiceStatusEnum.DRAFT, BillingInvoiceStatusEnum.OPEN)
    assert window.limit == 1


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        SettlementBatchRunner(SettlingProvider(), None, batch_size=0)  # type: ignore[arg-type]
