"""Remove test-mode billing data before the platform switches to live mode.

Deletes every non-live invoice (resetting the billing data of its sessions)
and unlinks accounts attached to test customers. Refuses to run in production.

Example:
    python tooling/scripts/purge_billing_test_data.py --yes
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Purge billing test data")
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the purge; without it the script only reports what it would target.",
    )
    return parser.parse_args()


async def _run(confirmed: bool) -> dict[str, int] | None:
    repo_root = Path(__file__).resolve().parents[2]
    billing_src = repo_root / "apps" / "billing" / "src"
    if str(billing_src) not in sys.path:
        sys.path.insert(0, str(billing_src))

    from voltledger_billing.core.settings import settings  # type: ignore import-position
    from voltledger_billing.db.session import async_session  # type: ignore import-position
    from voltledger_billing.models.user import UserStatusEnum  # type: ignore import-position
    from voltledger_billing.services.billing import (  # type: ignore import-position
        BillingTestDataPurger,
        InvoiceFilter,
        SqlAlchemyLedgerStore,
    )

    if settings.environment == "production":
        logger.error("Refusing to purge billing test data in production")
        return None

    store = SqlAlchemyLedgerStore(async_session)
    if not confirmed:
        invoices = await store.query_invoices(InvoiceFilter(live_mode=False))
        users = await store.query_accounts(statuses=[UserStatusEnum.ACTIVE], with_test_billing_data=True)
        logger.info(
            "Dry run - pass --yes to purge",
            test_invoices=len(invoices),
            test_users=len(users),
        )
        return {}
    return await BillingTestDataPurger(store).purge_all()


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.yes))
    if summary is None:
        return 2
    if summary:
        logger.success("Billing test data purged", **summary)
    return 1 if summary.get("invoices_failed") or summary.get("users_failed") else 0


if __name__ == "__main__":
    sys.exit(main())
