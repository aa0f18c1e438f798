import asyncio

from loguru import logger

from voltledger_billing import __version__
from voltledger_billing.core.logging import configure_logging
from voltledger_billing.core.settings import settings
from voltledger_billing.db.session import async_session
from voltledger_billing.workers import BillingSettlementWorker


async def _serve() -> None:
    worker = BillingSettlementWorker(async_session)
    worker.start()
    try:
        await asyncio.Event().wait()
    finally:
        await worker.stop()


def main() -> None:
    configure_logging(
        service_name=settings.service_name,
        environment=settings.environment,
        version=__version__,
    )
    if not settings.billing_settlement_worker_enabled:
        logger.warning("Billing settlement worker is disabled; nothing to run")
        return
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Billing settlement worker interrupted")


if __name__ == "__main__":
    main()
