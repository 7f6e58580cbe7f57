"""Manager Digest - scheduled balance and turnover reports for payment managers."""

__version__ = "0.1.0"

from manager_digest.clients import DocumentStore, FirestoreStore, StoreError, TelegramNotifier
from manager_digest.config import configure_logging, get_settings
from manager_digest.formatting import format_date, format_money, to_decimal
from manager_digest.messages import MessageComposer, ReportTemplate
from manager_digest.orchestrator import (
    ReportKind,
    ReportOrchestrator,
    ReportSchedule,
    RunSummary,
    build_schedules,
)
from manager_digest.periods import (
    PeriodPolicy,
    ReportingWindow,
    resolve_window,
    saturday_week,
    trailing_seven_days,
)
from manager_digest.records import ManagerRecord, StatsResult, TransactionRecord
from manager_digest.scheduler import CronExpression, Scheduler
from manager_digest.stats import StatsAggregator

__all__ = [
    # Version
    "__version__",
    # Formatting
    "format_money",
    "format_date",
    "to_decimal",
    # Records
    "ManagerRecord",
    "TransactionRecord",
    "StatsResult",
    # Periods
    "PeriodPolicy",
    "ReportingWindow",
    "resolve_window",
    "trailing_seven_days",
    "saturday_week",
    # Reporting
    "StatsAggregator",
    "MessageComposer",
    "ReportTemplate",
    # Clients
    "DocumentStore",
    "FirestoreStore",
    "StoreError",
    "TelegramNotifier",
    # Orchestrator & Scheduler
    "ReportOrchestrator",
    "ReportKind",
    "ReportSchedule",
    "RunSummary",
    "build_schedules",
    "Scheduler",
    "CronExpression",
    # Config
    "get_settings",
    "configure_logging",
]
