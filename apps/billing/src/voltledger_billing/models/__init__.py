"""SQLAlchemy models package."""

from .charging_station import ChargingStation, SiteArea  # noqa: F401
from .invoice import BillingInvoice, BillingInvoiceStatusEnum  # noqa: F401
from .settlement_run import BillingSettlementRun  # noqa: F401
from .transaction import Transaction  # noqa: F401
from .user import ProviderLink, User, UserStatusEnum  # noqa: F401
