"""Worker wiring for the periodic invoice settlement sweep."""

from __future__ import annotations

import inspect
from datetime import datetime, timezone
from typing import Callable, Dict
from uuid import UUID
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from voltledger_billing.core.settings import Settings, get_settings
from voltledger_billing.models.settlement_run import BillingSettlementRun
from voltledger_billing.services.billing.notifications import InvoiceNotifier, NotificationBridge
from voltledger_billing.services.billing.providers import BillingProvider, build_billing_provider
from voltledger_billing.services.billing.settlement import SettlementBatchRunner, SettlementSummary
from voltledger_billing.services.billing.store import SessionFactory, SqlAlchemyLedgerStore
from voltledger_billing.services.notifications import NotificationService

ProviderFactory = Callable[[], BillingProvider]
NotifierFactory = Callable[[], InvoiceNotifier]

JOB_ID = "billing-settlement"


class BillingSettlementWorker:
    """Runs the settlement sweep on a cron schedule and records every run."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        provider_factory: ProviderFactory | None = None,
        notifier_factory: NotifierFactory | None = None,
        cron: str | None = None,
        trigger_label: str | None = None,
        config: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = config or get_settings()
        self._provider_factory = provider_factory or (lambda: build_billing_provider(self._settings))
        self._notifier_factory = notifier_factory or NotificationService
        self.cron = cron or self._settings.billing_settlement_cron
        self._trigger_label = trigger_label or self._settings.billing_settlement_trigger_label
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        if self._scheduler is not None:
            return
        tz = ZoneInfo(self._settings.billing_timezone)
        scheduler = AsyncIOScheduler(timezone=tz)
        scheduler.add_job(
            self._scheduled_run,
            trigger=CronTrigger.from_crontab(self.cron, timezone=tz),
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Billing settlement worker started", cron=self.cron, timezone=str(tz))

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        logger.info("Billing settlement worker stopped")

    async def run_once(
        self,
        *,
        force_operation: bool = False,
        triggered_by: str | None = None,
    ) -> Dict[str, int]:
        """Execute a single settlement sweep and persist its outcome."""

        trigger = triggered_by or self._trigger_label
        store = SqlAlchemyLedgerStore(self._session_factory)

        async with self._session_factory() as session:
            run = BillingSettlementRun(
                triggered_by=trigger,
                forced=force_operation,
                started_at=datetime.now(timezone.utc),
            )
            session.add(run)
            await session.commit()
            run_id = run.id

        bridge: NotificationBridge | None = None
        try:
            provider = self._provider_factory()
            bridge = NotificationBridge(self._notifier_factory(), frontend_url=self._settings.frontend_url)
            runner = SettlementBatchRunner.from_settings(
                provider,
                store,
                self._settings,
                notification_bridge=bridge,
            )
            summary = await runner.run_periodic_settlement(force_operation)
        except Exception as exc:
            await self._finish_run(
                run_id,
                status="failed",
                metadata=self._build_run_metadata(trigger, force_operation, error=str(exc)),
                error_message=str(exc),
            )
            logger.exception("Billing settlement sweep failed", run_id=str(run_id), error=str(exc))
            raise
        finally:
            if bridge is not None:
                await bridge.drain()

        await self._finish_run(
            run_id,
            status="completed",
            metadata=self._build_run_metadata(trigger, force_operation),
            summary=summary,
        )
        logger.info(
            "Billing settlement sweep completed",
            run_id=str(run_id),
            trigger=trigger,
            forced=force_operation,
            **summary.as_dict(),
        )
        return summary.as_dict()

    async def _finish_run(
        self,
        run_id: UUID,
        *,
        status: str,
        metadata: Dict[str, object | None],
        summary: SettlementSummary | None = None,
        error_message: str | None = None,
    ) -> None:
        async with self._session_factory() as session:
            run = await session.get(BillingSettlementRun, run_id)
            if run is None:
                return
            run.status = status
            run.completed_at = datetime.now(timezone.utc)
            run.metadata_json = metadata
            run.error_message = error_message
            if summary is not None:
                run.succeeded_count = summary.succeeded
                run.failed_count = summary.failed
                run.skipped_count = summary.skipped
                run.compensated_count = summary.compensated
            await session.commit()

    async def _scheduled_run(self) -> None:
        try:
            await self.run_once()
        except Exception as exc:  # pragma: no cover - already recorded on the run
            logger.error("Scheduled billing settlement failed", error=str(exc))

    def _build_run_metadata(
        self,
        trigger: str,
        forced: bool,
        *,
        error: str | None = None,
    ) -> Dict[str, object | None]:
        metadata: Dict[str, object | None] = {
            "triggered_by": trigger,
            "forced": forced,
            "periodic_billing_allowed": self._settings.billing_periodic_billing_allowed,
            "batch_page_size": self._settings.billing_batch_page_size,
            "timezone": self._settings.billing_timezone,
        }
        if error:
            metadata["error"] = error
        return metadata
