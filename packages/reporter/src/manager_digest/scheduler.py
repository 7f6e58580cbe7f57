"""Cron-style scheduler for the report jobs.

Each job runs its own timer loop in a fixed time zone. A job that is still
running when its next firing comes due is skipped for that firing; separate
jobs run independently and may overlap.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import structlog

from manager_digest.config import get_settings

logger = structlog.get_logger(__name__)

# Minutes searched by next_run before giving up (a leap year plus a day)
MAX_SEARCH_MINUTES = 367 * 24 * 60


class CronField:
    """One field of a cron expression.

    Supports ``*``, single values, ranges (``1-5``), lists (``1,3,5``) and
    steps (``*/15``, ``10-40/10``).
    """

    def __init__(self, expression: str, min_val: int, max_val: int) -> None:
        self.expression = expression
        self.min_val = min_val
        self.max_val = max_val
        self.values: frozenset[int] = self._parse(expression)

    def _parse(self, expr: str) -> frozenset[int]:
        values: set[int] = set()
        for part in expr.split(","):
            part = part.strip()
            if not part:
                raise ValueError(f"Empty cron field in {expr!r}")

            step = 1
            if "/" in part:
                part, step_str = part.split("/", 1)
                step = int(step_str)
                if step <= 0:
                    raise ValueError(f"Cron step must be positive: {expr!r}")

            if part == "*":
                start, end = self.min_val, self.max_val
            elif "-" in part:
                start_str, end_str = part.split("-", 1)
                start, end = int(start_str), int(end_str)
            else:
                start = end = int(part)
                if step != 1:
                    end = self.max_val

            if not (self.min_val <= start <= end <= self.max_val):
                raise ValueError(
                    f"Cron field {expr!r} out of range {self.min_val}-{self.max_val}"
                )
            values.update(range(start, end + 1, step))
        return frozenset(values)

    def matches(self, value: int) -> bool:
        return value in self.values

    def __repr__(self) -> str:
        return f"CronField({self.expression!r})"


class CronExpression:
    """Five-field cron expression: minute hour day-of-month month day-of-week.

    Day of week uses Sunday=0 .. Saturday=6 (7 is also accepted for Sunday).
    When both day fields are restricted a day matches if either one does,
    as in standard cron.

    Examples:
        "0 12 * * *"  -> every day at 12:00
        "0 21 * * 5"  -> Fridays at 21:00
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression.strip()
        parts = self.expression.split()
        if len(parts) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(parts)}: {self.expression!r}"
            )

        self.minute = CronField(parts[0], 0, 59)
        self.hour = CronField(parts[1], 0, 23)
        self.day_of_month = CronField(parts[2], 1, 31)
        self.month = CronField(parts[3], 1, 12)
        self.day_of_week = CronField(parts[4], 0, 7)

    def matches(self, dt: datetime) -> bool:
        """Check a datetime (already in the evaluation time zone) against the expression."""
        cron_weekday = (dt.weekday() + 1) % 7  # Sunday=0
        dow_match = self.day_of_week.matches(cron_weekday) or (
            cron_weekday == 0 and self.day_of_week.matches(7)
        )
        dom_match = self.day_of_month.matches(dt.day)
        if self._restricted(self.day_of_month) and self._restricted(self.day_of_week):
            day_match = dom_match or dow_match
        else:
            day_match = dom_match and dow_match
        return (
            self.minute.matches(dt.minute)
            and self.hour.matches(dt.hour)
            and self.month.matches(dt.month)
            and day_match
        )

    @staticmethod
    def _restricted(cron_field: CronField) -> bool:
        return not cron_field.expression.startswith("*")

    def next_run(self, after: datetime) -> datetime:
        """First matching minute strictly after ``after``, in its time zone.

        Raises:
            ValueError: If nothing matches within a year.
        """
        candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        for _ in range(MAX_SEARCH_MINUTES):
            if self.matches(candidate):
                return candidate
            candidate += timedelta(minutes=1)
        raise ValueError(
            f"No matching time found for cron expression {self.expression!r} "
            f"within a year after {after.isoformat()}"
        )

    def __repr__(self) -> str:
        return f"CronExpression({self.expression!r})"

    def __str__(self) -> str:
        return self.expression


@dataclass
class ScheduledJob:
    """A named handler fired on a cron expression."""

    name: str
    cron: CronExpression
    handler: Callable[[], Awaitable[Any]]
    enabled: bool = True
    in_flight: bool = False
    runs: int = 0
    skipped: int = 0
    last_started: datetime | None = None
    next_run: datetime | None = field(default=None, repr=False)


class Scheduler:
    """Fires registered jobs on their cron schedules.

    Usage:
        scheduler = Scheduler()
        scheduler.add_job("daily", "0 12 * * *", run_daily)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        timezone: str | None = None,
        shutdown_grace: float | None = None,
        clock: Callable[[ZoneInfo], datetime] | None = None,
    ):
        settings = get_settings()
        self._tz = ZoneInfo(timezone or settings.report_timezone)
        self._shutdown_grace = (
            settings.shutdown_grace_seconds if shutdown_grace is None else shutdown_grace
        )
        self._clock = clock or (lambda tz: datetime.now(tz))

        self._jobs: dict[str, ScheduledJob] = {}
        self._loops: list[asyncio.Task[None]] = []
        self._runs: set[asyncio.Task[None]] = set()
        self._is_running = False

        self._logger = logger.bind(component="scheduler", timezone=str(self._tz))

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    def now(self) -> datetime:
        """Current instant in the scheduler's time zone."""
        return self._clock(self._tz)

    def add_job(
        self,
        name: str,
        cron: str | CronExpression,
        handler: Callable[[], Awaitable[Any]],
        enabled: bool = True,
    ) -> ScheduledJob:
        """Register a job.

        Raises:
            ValueError: If the name is taken or the cron expression is invalid.
        """
        if name in self._jobs:
            raise ValueError(f"Job already registered: {name}")
        expression = cron if isinstance(cron, CronExpression) else CronExpression(cron)
        job = ScheduledJob(name=name, cron=expression, handler=handler, enabled=enabled)
        self._jobs[name] = job
        self._logger.debug("job_registered", job=name, cron=str(expression))
        return job

    def get_job(self, name: str) -> ScheduledJob:
        try:
            return self._jobs[name]
        except KeyError:
            raise KeyError(f"Unknown job: {name}") from None

    def trigger(self, name: str) -> asyncio.Task[None] | None:
        """Fire a job now, unless its previous run is still in flight.

        Returns:
            The task running the job, or None if the firing was skipped.
        """
        job = self.get_job(name)
        if job.in_flight:
            job.skipped += 1
            self._logger.warning("job_skipped_in_flight", job=name, skipped=job.skipped)
            return None

        job.in_flight = True
        task = asyncio.create_task(self._execute(job), name=f"job:{name}")
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def _execute(self, job: ScheduledJob) -> None:
        job.runs += 1
        job.last_started = self.now()
        self._logger.info("job_started", job=job.name, run=job.runs)
        try:
            await job.handler()
        except asyncio.CancelledError:
            self._logger.warning("job_cancelled", job=job.name)
            raise
        except Exception as e:
            self._logger.error("job_failed", job=job.name, error=str(e), exc_info=True)
        else:
            self._logger.info("job_completed", job=job.name)
        finally:
            job.in_flight = False

    async def _job_loop(self, job: ScheduledJob) -> None:
        last_fired: datetime | None = None
        while self._is_running:
            now = self.now()
            # The wall clock can lag the loop clock; never reuse a slot already fired
            after = max(now, last_fired) if last_fired is not None else now
            job.next_run = job.cron.next_run(after)
            delay = (job.next_run - now).total_seconds()
            self._logger.debug("job_waiting", job=job.name, next_run=job.next_run.isoformat())
            await asyncio.sleep(max(delay, 0.0))
            if self._is_running:
                self.trigger(job.name)
                last_fired = job.next_run

    async def start(self) -> None:
        """Start one timer loop per enabled job."""
        if self._is_running:
            self._logger.warning("scheduler_already_running")
            return

        self._is_running = True
        for job in self._jobs.values():
            if job.enabled:
                self._loops.append(
                    asyncio.create_task(self._job_loop(job), name=f"loop:{job.name}")
                )
        self._logger.info(
            "scheduler_started",
            jobs=[j.name for j in self._jobs.values() if j.enabled],
        )

    async def stop(self) -> None:
        """Stop firing jobs; give in-flight runs a grace period, then cancel them."""
        if not self._is_running:
            return

        self._is_running = False
        for loop_task in self._loops:
            loop_task.cancel()
        for loop_task in self._loops:
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task
        self._loops.clear()

        if self._runs:
            self._logger.info("waiting_for_runs", count=len(self._runs))
            _, pending = await asyncio.wait(set(self._runs), timeout=self._shutdown_grace)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                self._logger.warning("runs_abandoned", count=len(pending))

        self._logger.info("scheduler_stopped")

    def get_status(self) -> dict[str, Any]:
        """Get current scheduler status."""
        return {
            "is_running": self._is_running,
            "timezone": str(self._tz),
            "jobs": {
                job.name: {
                    "cron": str(job.cron),
                    "enabled": job.enabled,
                    "in_flight": job.in_flight,
                    "runs": job.runs,
                    "skipped": job.skipped,
                    "next_run": job.next_run.isoformat() if job.next_run else None,
                }
                for job in self._jobs.values()
            },
        }
