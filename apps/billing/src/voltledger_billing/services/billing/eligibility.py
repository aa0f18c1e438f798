"""Pre-flight checks run before a charging session is billed."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger

from voltledger_billing.models.charging_station import ChargingStation, SiteArea
from voltledger_billing.models.transaction import Transaction
from voltledger_billing.services.billing.exceptions import BillingAction, BillingPreconditionError

if TYPE_CHECKING:
    from voltledger_billing.core.settings import Settings


def _precondition(message: str) -> BillingPreconditionError:
    return BillingPreconditionError(message, action=BillingAction.TRANSACTION)


def _has_user(transaction: Transaction) -> bool:
    user = transaction.user
    return user is not None and (transaction.user_id or user.id) is not None


class EligibilityGuard:
    """Synchronous gates; violations are programmer or configuration mistakes."""

    def __init__(
        self,
        *,
        billing_enabled: bool,
        organization_enabled: bool,
        enforce_usage_thresholds: bool,
        min_duration_seconds: int = 60,
        min_consumption_wh: int = 1000,
    ) -> None:
        self._billing_enabled = billing_enabled
        self._organization_enabled = organization_enabled
        self._enforce_usage_thresholds = enforce_usage_thresholds
        self._min_duration_seconds = min_duration_seconds
        self._min_consumption_wh = min_consumption_wh

    @classmethod
    def from_settings(cls, settings: "Settings") -> "EligibilityGuard":
        return cls(
            billing_enabled=settings.billing_transaction_billing_activated,
            organization_enabled=settings.organization_component_enabled,
            enforce_usage_thresholds=settings.billing_usage_threshold_enforced,
            min_duration_seconds=settings.billing_min_session_duration_seconds,
            min_consumption_wh=settings.billing_min_session_consumption_wh,
        )

    def check_bill_transaction(self, transaction: Transaction) -> None:
        if not _has_user(transaction):
            raise _precondition("User is not provided")
        if not transaction.charging_station_id and transaction.charging_station is None:
            raise _precondition("Charging Station is not provided")
        if not transaction.user.is_billable:
            raise _precondition("User has no Billing Data")

    def check_start_transaction(
        self,
        transaction: Transaction,
        charging_station: ChargingStation | None,
        site_area: SiteArea | None,
    ) -> bool:
        if not self._billing_enabled:
            return False
        if not _has_user(transaction):
            raise _precondition("User ID is not provided")
        if transaction.user.free_access:
            return False
        if charging_station is None:
            raise _precondition("The Charging Station is mandatory to start a Transaction")
        if self._organization_enabled:
            if site_area is None:
                raise _precondition("The Site Area is mandatory to start a Transaction")
            if not site_area.access_control:
                return False
        if not transaction.user.is_billable:
            raise _precondition("User has no Billing data or no Customer ID")
        return True

    def check_usage_threshold(self, transaction: Transaction) -> bool:
        """Reject sessions too short or too small to be genuine usage.

        Such sessions are typically emitted by stations stopping on a hardware
        fault (e.g. housing temperature limits).
        """

        if not self._enforce_usage_thresholds:
            return True
        time_spent = self.compute_time_spent_seconds(transaction)
        consumption = transaction.total_consumption_wh or 0
        if time_spent < self._min_duration_seconds or consumption < self._min_consumption_wh:
            logger.warning(
                "Transaction data is suspicious - Billing operation has been aborted",
                action=BillingAction.TRANSACTION.value,
                transaction_id=transaction.id,
                user_id=str(transaction.user_id),
                time_spent_seconds=time_spent,
                consumption_wh=consumption,
            )
            return False
        return True

    @staticmethod
    def compute_time_spent_seconds(transaction: Transaction) -> float:
        end: datetime | None = transaction.stop_timestamp or transaction.last_consumption_timestamp
        if end is None or transaction.timestamp is None:
            return 0.0
        return (end - transaction.timestamp).total_seconds()

    @classmethod
    def format_time_spent(cls, transaction: Transaction) -> str:
        total_minutes = int(cls.compute_time_spent_seconds(transaction) // 60)
        hours, minutes = divmod(total_minutes, 60)
        return f"{hours}h{minutes:02d}"
