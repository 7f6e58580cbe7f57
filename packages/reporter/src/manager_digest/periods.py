"""Reporting window resolution."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


class PeriodPolicy(str, Enum):
    """How a report's window is derived from the current instant."""

    TRAILING_7_DAYS = "trailing_7_days"
    SATURDAY_WEEK = "saturday_week"


@dataclass(frozen=True)
class ReportingWindow:
    """Inclusive time interval [start, end]."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(
                f"Window start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999000)


def trailing_seven_days(now: datetime) -> ReportingWindow:
    """Seven calendar days ending today: (today - 6 days) 00:00 to today 23:59:59.999."""
    return ReportingWindow(
        start=_start_of_day(now - timedelta(days=6)),
        end=_end_of_day(now),
    )


def saturday_week(now: datetime) -> ReportingWindow:
    """The Saturday to Friday week containing ``now``."""
    dow = (now.weekday() + 1) % 7  # Sunday=0 .. Saturday=6
    days_since_saturday = (dow + 1) % 7
    start = _start_of_day(now - timedelta(days=days_since_saturday))
    return ReportingWindow(start=start, end=_end_of_day(start + timedelta(days=6)))


def resolve_window(policy: PeriodPolicy, now: datetime) -> ReportingWindow:
    """Resolve the window for a policy at the given instant."""
    if policy is PeriodPolicy.TRAILING_7_DAYS:
        return trailing_seven_days(now)
    if policy is PeriodPolicy.SATURDAY_WEEK:
        return saturday_week(now)
    raise ValueError(f"Unknown period policy: {policy!r}")
