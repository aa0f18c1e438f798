"""Trigger the periodic billing settlement sweep once.

Intended usage: schedule via cron or run manually to settle last month's
invoices. ``--force`` settles today's invoices one page at a time instead.

Example:
    python tooling/scripts/run_billing_settlement.py --trigger cron
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute the billing settlement sweep once")
    parser.add_argument(
        "--trigger",
        default="manual",
        help="Label recorded in run metadata to describe the invocation source.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Settle invoices created today, bypassing the previous-month window.",
    )
    return parser.parse_args()


async def _run(trigger: str, force: bool) -> dict[str, int]:
    repo_root = Path(__file__).resolve().parents[2]
    billing_src = repo_root / "apps" / "billing" / "src"
    if str(billing_src) not in sys.path:
        sys.path.insert(0, str(billing_src))

    from voltledger_billing import __version__  # type: ignore import-position
    from voltledger_billing.core.logging import configure_logging  # type: ignore import-position
    from voltledger_billing.core.settings import settings  # type: ignore import-position
    from voltledger_billing.db.session import async_session  # type: ignore import-position
    from voltledger_billing.workers import BillingSettlementWorker  # type: ignore import-position

    configure_logging(
        service_name=settings.service_name,
        environment=settings.environment,
        version=__version__,
    )
    worker = BillingSettlementWorker(async_session)
    return await worker.run_once(force_operation=force, triggered_by=trigger)


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.trigger, args.force))
    logger.success(
        "Billing settlement run completed",
        trigger=args.trigger,
        forced=args.force,
        **summary,
    )
    return 1 if summary.get("failed", 0) else 0


if __name__ == "__main__":
    sys.exit(main())
