"""Orchestrator - runs the scheduled manager reports.

On every firing the orchestrator:
- Fetches the manager list from the store
- Skips managers without a payment method or chat
- Resolves the reporting window and aggregates stats when the report needs them
- Composes the message and delivers it, one manager at a time

A failure while handling one manager is logged and does not stop the rest
of the run.
"""

import asyncio
import signal
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

import structlog

from manager_digest.clients import (
    DocumentStore,
    FirestoreStore,
    StoreConfigurationError,
    StoreError,
    TelegramNotifier,
)
from manager_digest.config import FlatSettings, get_settings
from manager_digest.health import HealthServer
from manager_digest.messages import (
    DAILY_TEMPLATE,
    WEEKLY_TEMPLATE,
    MessageComposer,
    ReportTemplate,
)
from manager_digest.periods import PeriodPolicy, ReportingWindow, resolve_window
from manager_digest.records import ManagerRecord
from manager_digest.scheduler import Scheduler
from manager_digest.stats import StatsAggregator

logger = structlog.get_logger(__name__)


class ReportKind(str, Enum):
    """The reports this job knows how to send."""

    DAILY = "daily"  # Trailing 7 days, full figures
    WEEKLY = "weekly"  # Saturday to Friday, full figures
    BALANCE = "balance"  # Balance only


@dataclass(frozen=True)
class ReportSchedule:
    """What one trigger sends and when."""

    kind: ReportKind
    cron: str
    period: PeriodPolicy | None = None
    template: ReportTemplate | None = None
    negate_balance_display: bool = False

    @property
    def needs_stats(self) -> bool:
        return self.period is not None


def schedule_for(settings: FlatSettings, kind: ReportKind) -> ReportSchedule:
    """The configured schedule for one report kind."""
    available = {
        ReportKind.DAILY: ReportSchedule(
            kind=ReportKind.DAILY,
            cron=settings.daily_report_cron,
            period=PeriodPolicy.TRAILING_7_DAYS,
            template=DAILY_TEMPLATE,
            negate_balance_display=settings.daily_negate_balance,
        ),
        ReportKind.WEEKLY: ReportSchedule(
            kind=ReportKind.WEEKLY,
            cron=settings.weekly_report_cron,
            period=PeriodPolicy.SATURDAY_WEEK,
            template=WEEKLY_TEMPLATE,
            negate_balance_display=settings.weekly_negate_balance,
        ),
        ReportKind.BALANCE: ReportSchedule(
            kind=ReportKind.BALANCE,
            cron=settings.balance_report_cron,
            negate_balance_display=settings.balance_negate_balance,
        ),
    }
    return available[kind]


def build_schedules(settings: FlatSettings) -> list[ReportSchedule]:
    """Report schedules enabled by configuration."""
    return [schedule_for(settings, ReportKind(kind)) for kind in settings.enabled_reports]


@dataclass
class RunSummary:
    """Per-run delivery counts."""

    kind: ReportKind
    total: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    failed_managers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "total": self.total,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
        }


class ReportOrchestrator:
    """Runs report schedules against the store and the notifier.

    Usage:
        orchestrator = ReportOrchestrator(store, notifier)
        summary = await orchestrator.run_report(schedule)
    """

    def __init__(
        self,
        store: DocumentStore,
        notifier: TelegramNotifier,
        aggregator: StatsAggregator | None = None,
        composer: MessageComposer | None = None,
        managers_collection: str | None = None,
        timezone: str | None = None,
        clock: Callable[[ZoneInfo], datetime] | None = None,
    ):
        settings = get_settings()
        self._store = store
        self._notifier = notifier
        self._aggregator = aggregator or StatsAggregator(store)
        self._composer = composer or MessageComposer()
        self._managers_collection = managers_collection or settings.managers_collection
        self._tz = ZoneInfo(timezone or settings.report_timezone)
        self._clock = clock or (lambda tz: datetime.now(tz))

        self._logger = logger.bind(component="orchestrator")

    async def fetch_managers(self) -> list[ManagerRecord]:
        documents = await self._store.fetch_all(self._managers_collection)
        return [ManagerRecord.from_document(doc_id, data) for doc_id, data in documents]

    async def run_report(self, schedule: ReportSchedule) -> RunSummary:
        """Send one report to every configured manager."""
        summary = RunSummary(kind=schedule.kind)
        log = self._logger.bind(report=schedule.kind.value)
        log.info("report_run_starting")

        try:
            managers = await self.fetch_managers()
        except StoreError as e:
            log.error("manager_fetch_failed", error=str(e))
            return summary

        if not managers:
            log.info("report_run_no_managers")
            return summary

        now = self._clock(self._tz)
        window = resolve_window(schedule.period, now) if schedule.period else None

        for manager in managers:
            summary.total += 1
            if not manager.is_complete:
                summary.skipped += 1
                log.info(
                    "manager_skipped",
                    manager_id=manager.id,
                    has_method=bool(manager.method),
                    has_destination=bool(manager.destination_id),
                )
                continue

            try:
                text = await self._compose(manager, schedule, window)
                delivered = await self._notifier.deliver(manager.destination_id, text)
            except Exception as e:
                summary.failed += 1
                summary.failed_managers.append(manager.id)
                log.error(
                    "manager_failed",
                    manager_id=manager.id,
                    method=manager.method,
                    error=str(e),
                    exc_info=True,
                )
                continue

            if delivered:
                summary.sent += 1
                log.info("report_sent", method=manager.method, destination=manager.destination_id)
            else:
                summary.failed += 1
                summary.failed_managers.append(manager.id)
                log.warning(
                    "report_send_failed",
                    method=manager.method,
                    destination=manager.destination_id,
                )

        log.info("report_run_completed", **summary.to_dict())
        return summary

    async def _compose(
        self,
        manager: ManagerRecord,
        schedule: ReportSchedule,
        window: ReportingWindow | None,
    ) -> str:
        if window is None:
            return self._composer.compose_balance_report(
                manager.method,
                manager.balance,
                negate_balance_display=schedule.negate_balance_display,
            )

        stats = await self._aggregator.aggregate(manager.method, window.start, window.end)
        return self._composer.compose_full_report(
            manager.method,
            manager.balance,
            stats,
            window,
            template=schedule.template or DAILY_TEMPLATE,
            negate_balance_display=schedule.negate_balance_display,
        )

    def register(self, scheduler: Scheduler, schedules: list[ReportSchedule]) -> None:
        """Register one scheduler job per report schedule."""
        for schedule in schedules:

            async def handler(schedule: ReportSchedule = schedule) -> RunSummary:
                return await self.run_report(schedule)

            scheduler.add_job(schedule.kind.value, schedule.cron, handler)


async def serve(
    settings: FlatSettings, store: FirestoreStore, stop_event: asyncio.Event
) -> None:
    """Run the health endpoint and scheduler until ``stop_event`` is set."""
    health = HealthServer(settings.health_host, settings.port)
    scheduler = Scheduler(settings.report_timezone, settings.shutdown_grace_seconds)
    schedules = build_schedules(settings)

    async with TelegramNotifier() as notifier:
        orchestrator = ReportOrchestrator(store, notifier)
        orchestrator.register(scheduler, schedules)

        await health.start()
        await scheduler.start()
        logger.info(
            "manager_digest_running",
            reports={s.kind.value: s.cron for s in schedules},
            timezone=settings.report_timezone,
        )
        try:
            await stop_event.wait()
        finally:
            await scheduler.stop()
            await health.stop()
            store.close()


async def run_once(settings: FlatSettings, store: FirestoreStore, kind: ReportKind) -> RunSummary:
    """Run a single report immediately."""
    schedule = schedule_for(settings, kind)
    try:
        async with TelegramNotifier() as notifier:
            return await ReportOrchestrator(store, notifier).run_report(schedule)
    finally:
        store.close()


async def main() -> None:
    """Main entry point.

    Usage:
        # Run the scheduled reports until SIGINT/SIGTERM
        python -m manager_digest.orchestrator

        # Send one report now and exit
        python -m manager_digest.orchestrator --run-now daily
    """
    import argparse
    import sys

    from pydantic import ValidationError

    from manager_digest.config import configure_logging

    parser = argparse.ArgumentParser(description="Scheduled manager balance digest")
    parser.add_argument(
        "--run-now",
        choices=[k.value for k in ReportKind],
        help="Send one report immediately and exit",
    )
    args = parser.parse_args()

    configure_logging()
    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error(
            "configuration_invalid",
            errors=[".".join(str(p) for p in err["loc"]) + ": " + err["msg"] for err in e.errors()],
        )
        sys.exit(1)
    configure_logging(settings.log_level, settings.log_format)

    try:
        store = FirestoreStore(settings.service_account_info())
    except StoreConfigurationError as e:
        logger.error("configuration_invalid", errors=[f"FIREBASE_SERVICE: {e}"])
        sys.exit(1)

    if args.run_now:
        summary = await run_once(settings, store, ReportKind(args.run_now))
        logger.info("run_now_finished", **summary.to_dict())
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await serve(settings, store, stop_event)
    except Exception as e:
        logger.exception("manager_digest_error", error=str(e))
        sys.exit(1)
    logger.info("manager_digest_stopped")


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
