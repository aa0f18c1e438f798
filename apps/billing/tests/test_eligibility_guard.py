from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from voltledger_billing.models.charging_station import ChargingStation, SiteArea
from voltledger_billing.models.transaction import Transaction
from voltledger_billing.models.user import User
from voltledger_billing.services.billing.eligibility import EligibilityGuard
from voltledger_billing.services.billing.exceptions import BillingPreconditionError

START = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)


def _guard(**overrides) -> EligibilityGuard:
    options = {
        "billing_enabled": True,
        "organization_enabled": False,
        "enforce_usage_thresholds": True,
    }
    options.update(overrides)
    return EligibilityGuard(**options)


def _transaction(
    *,
    seconds: int = 3600,
    consumption_wh: int = 10_000,
    customer_id: str | None = "cus_1",
    free_access: bool = False,
    with_user: bool = True,
    station_id: str | None = "CS-1",
) -> Transaction:
    user = (
        User(id=uuid4(), email="driver@example.com", billing_customer_id=customer_id, free_access=free_access)
        if with_user
        else None
    )
    return Transaction(
        id=1,
        user=user,
        charging_station_id=station_id,
        timestamp=START,
        stop_timestamp=START + timedelta(seconds=seconds),
        total_consumption_wh=consumption_wh,
    )


def test_short_and_small_session_is_rejected():
    assert _guard().check_usage_threshold(_transaction(seconds=30, consumption_wh=500)) is False


def test_short_session_is_rejected_even_with_high_consumption():
    assert _guard().check_usage_threshold(_transaction(seconds=30, consumption_wh=5000)) is False


def test_genuine_session_passes():
    assert _guard().check_usage_threshold(_transaction(seconds=120, consumption_wh=2000)) is True


def test_threshold_check_can_be_bypassed():
    guard = _guard(enforce_usage_thresholds=False)

    assert guard.check_usage_threshold(_transaction(seconds=30, consumption_wh=500)) is True


def test_time_spent_falls_back_to_last_consumption():
    transaction = _transaction()
    transaction.stop_timestamp = None
    transaction.last_consumption_timestamp = START + timedelta(minutes=65)

    assert EligibilityGuard.compute_time_spent_seconds(transaction) == 3900
    assert EligibilityGuard.format_time_spent(transaction) == "1h05"


def test_bill_transaction_requires_user():
    with pytest.raises(BillingPreconditionError):
        _guard().check_bill_transaction(_transaction(with_user=False))


def test_bill_transaction_requires_station():
    with pytest.raises(BillingPreconditionError):
        _guard().check_bill_transaction(_transaction(station_id=None))


def test_bill_transaction_requires_billing_link():
    with pytest.raises(BillingPreconditionError):
        _guard().check_bill_transaction(_transaction(customer_id=None))


def test_bill_transaction_accepts_complete_session():
    _guard().check_bill_transaction(_transaction())


def test_start_not_billed_when_billing_disabled():
    guard = _guard(billing_enabled=False)

    assert guard.check_start_transaction(_transaction(with_user=False), None, None) is False


def test_start_not_billed_for_free_access_user():
    assert _guard().check_start_transaction(_transaction(free_access=True), None, None) is False


def test_start_requires_station():
    with pytest.raises(BillingPreconditionError):
        _guard().check_start_transaction(_transaction(), None, None)


def test_start_requires_site_area_with_organizations():
    guard = _guard(organization_enabled=True)

    with pytest.raises(BillingPreconditionError):
        guard.check_start_transaction(_transaction(), ChargingStation(id="CS-1"), None)


def test_start_not_billed_without_access_control():
    guard = _guard(organization_enabled=True)
    site_area = SiteArea(id=uuid4(), name="Depot", access_control=False)

    assert guard.check_start_transaction(_transaction(), ChargingStation(id="CS-1"), site_area) is False


def test_start_requires_billing_link():
    with pytest.raises(BillingPreconditionError):
        _guard().check_start_transaction(_transaction(customer_id=None), ChargingStation(id="CS-1"), None)


def test_start_billed_for_linked_user():
    guard = _guard(organization_enabled=True)
    site_area = SiteArea(id=uuid4(), name="Depot", access_control=True)

    assert guard.check_start_transaction(_transaction(), ChargingStation(id="CS-1"), site_area) is True
