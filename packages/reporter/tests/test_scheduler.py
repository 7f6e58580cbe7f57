"""Tests for the cron scheduler."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from manager_digest.scheduler import CronExpression, CronField, Scheduler

DHAKA = ZoneInfo("Asia/Dhaka")


class TestCronField:
    """Tests for CronField parsing."""

    def test_wildcard(self):
        assert CronField("*", 0, 5).values == frozenset(range(6))

    def test_list_range_and_step(self):
        assert CronField("1,3,10-12", 0, 59).values == frozenset({1, 3, 10, 11, 12})
        assert CronField("*/15", 0, 59).values == frozenset({0, 15, 30, 45})
        assert CronField("5/20", 0, 59).values == frozenset({5, 25, 45})

    @pytest.mark.parametrize("expr", ["60", "5-1", "*/0", "", "a"])
    def test_invalid(self, expr):
        with pytest.raises(ValueError):
            CronField(expr, 0, 59)


class TestCronExpression:
    """Tests for CronExpression."""

    def test_wrong_field_count(self):
        with pytest.raises(ValueError):
            CronExpression("0 12 * *")

    def test_matches_noon(self):
        cron = CronExpression("0 12 * * *")

        assert cron.matches(datetime(2024, 5, 15, 12, 0, tzinfo=DHAKA))
        assert not cron.matches(datetime(2024, 5, 15, 12, 1, tzinfo=DHAKA))

    def test_day_of_week_sunday_zero_and_seven(self):
        sunday = datetime(2024, 5, 12, 9, 0, tzinfo=DHAKA)

        assert CronExpression("0 9 * * 0").matches(sunday)
        assert CronExpression("0 9 * * 7").matches(sunday)
        assert not CronExpression("0 9 * * 1").matches(sunday)

    def test_next_run_later_today(self):
        cron = CronExpression("0 20 * * *")

        after = datetime(2024, 5, 15, 12, 30, 15, tzinfo=DHAKA)

        assert cron.next_run(after) == datetime(2024, 5, 15, 20, 0, tzinfo=DHAKA)

    def test_next_run_is_strictly_after(self):
        cron = CronExpression("0 12 * * *")

        after = datetime(2024, 5, 15, 12, 0, tzinfo=DHAKA)

        assert cron.next_run(after) == datetime(2024, 5, 16, 12, 0, tzinfo=DHAKA)

    def test_next_run_weekly(self):
        cron = CronExpression("0 21 * * 5")

        after = datetime(2024, 5, 15, 12, 0, tzinfo=DHAKA)  # Wednesday

        assert cron.next_run(after) == datetime(2024, 5, 17, 21, 0, tzinfo=DHAKA)

    def test_impossible_expression(self):
        with pytest.raises(ValueError):
            CronExpression("0 0 31 2 *").next_run(datetime(2024, 1, 1, tzinfo=DHAKA))


class TestScheduler:
    """Tests for Scheduler."""

    def test_initialization(self):
        scheduler = Scheduler()

        assert scheduler.timezone == DHAKA
        assert scheduler.is_running is False
        assert scheduler.jobs == []

    def test_add_job(self):
        scheduler = Scheduler()

        job = scheduler.add_job("daily", "0 12 * * *", AsyncMock())

        assert job.name == "daily"
        assert str(job.cron) == "0 12 * * *"
        assert scheduler.get_job("daily") is job

    def test_duplicate_job_rejected(self):
        scheduler = Scheduler()
        scheduler.add_job("daily", "0 12 * * *", AsyncMock())

        with pytest.raises(ValueError):
            scheduler.add_job("daily", "0 20 * * *", AsyncMock())

    def test_invalid_cron_rejected(self):
        with pytest.raises(ValueError):
            Scheduler().add_job("bad", "noon", AsyncMock())

    def test_unknown_job(self):
        with pytest.raises(KeyError):
            Scheduler().trigger("missing")

    @pytest.mark.asyncio
    async def test_trigger_runs_handler(self):
        scheduler = Scheduler()
        handler = AsyncMock()
        scheduler.add_job("balance", "0 20 * * *", handler)

        task = scheduler.trigger("balance")
        await task

        handler.assert_awaited_once()
        job = scheduler.get_job("balance")
        assert job.runs == 1
        assert job.in_flight is False

    @pytest.mark.asyncio
    async def test_overlapping_firing_skipped(self):
        scheduler = Scheduler()
        release = asyncio.Event()
        calls = 0

        async def slow() -> None:
            nonlocal calls
            calls += 1
            await release.wait()

        scheduler.add_job("daily", "0 12 * * *", slow)

        first = scheduler.trigger("daily")
        await asyncio.sleep(0)
        second = scheduler.trigger("daily")

        assert first is not None
        assert second is None
        assert scheduler.get_job("daily").skipped == 1

        release.set()
        await first
        assert calls == 1

        third = scheduler.trigger("daily")
        assert third is not None
        await third
        assert calls == 2

    @pytest.mark.asyncio
    async def test_different_jobs_may_overlap(self):
        scheduler = Scheduler()
        release = asyncio.Event()

        async def slow() -> None:
            await release.wait()

        scheduler.add_job("daily", "0 12 * * *", slow)
        scheduler.add_job("balance", "0 20 * * *", slow)

        first = scheduler.trigger("daily")
        second = scheduler.trigger("balance")

        assert first is not None and second is not None
        release.set()
        await asyncio.gather(first, second)

    @pytest.mark.asyncio
    async def test_handler_error_clears_in_flight(self):
        scheduler = Scheduler()
        scheduler.add_job("daily", "0 12 * * *", AsyncMock(side_effect=RuntimeError("boom")))

        await scheduler.trigger("daily")

        assert scheduler.get_job("daily").in_flight is False

    @pytest.mark.asyncio
    async def test_job_loop_fires_when_due(self):
        # A clock sitting one millisecond before 12:00 makes the job due almost at once
        ticks = iter(
            [datetime(2024, 5, 15, 11, 59, 59, 999000, tzinfo=DHAKA)]
        )
        after = datetime(2024, 5, 15, 12, 0, 30, tzinfo=DHAKA)
        scheduler = Scheduler(clock=lambda tz: next(ticks, after))
        fired = asyncio.Event()

        async def handler() -> None:
            fired.set()

        scheduler.add_job("daily", "0 12 * * *", handler)
        await scheduler.start()
        try:
            await asyncio.wait_for(fired.wait(), timeout=2)
        finally:
            await scheduler.stop()

        assert scheduler.get_job("daily").runs == 1
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_stop_cancels_runs_after_grace(self):
        scheduler = Scheduler(shutdown_grace=0.01)
        started = asyncio.Event()

        async def hang() -> None:
            started.set()
            await asyncio.Event().wait()

        scheduler.add_job("daily", "0 12 * * *", hang)
        await scheduler.start()
        task = scheduler.trigger("daily")
        await started.wait()

        await scheduler.stop()

        assert task.cancelled()
        assert scheduler.get_job("daily").in_flight is False

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self):
        scheduler = Scheduler()
        scheduler.add_job("daily", "0 12 * * *", AsyncMock())

        await scheduler.start()
        await scheduler.start()
        try:
            assert len(scheduler._loops) == 1
        finally:
            await scheduler.stop()

    def test_get_status(self):
        scheduler = Scheduler()
        scheduler.add_job("daily", "0 12 * * *", AsyncMock())

        status = scheduler.get_status()

        assert status["is_running"] is False
        assert status["timezone"] == "Asia/Dhaka"
        assert status["jobs"]["daily"]["cron"] == "0 12 * * *"
        assert status["jobs"]["daily"]["runs"] == 0


class TestJobLoopClockLag:
    """The wall clock may read slightly behind the slot the loop just fired."""

    @pytest.mark.asyncio
    async def test_slot_fires_once_when_clock_lags(self):
        readings = [
            datetime(2024, 5, 15, 11, 59, 59, 999000, tzinfo=DHAKA),
            datetime(2024, 5, 15, 11, 59, 59, 999500, tzinfo=DHAKA),
        ]
        later = datetime(2024, 5, 15, 12, 0, 30, tzinfo=DHAKA)
        ticks = iter(readings)
        scheduler = Scheduler(clock=lambda tz: next(ticks, later))
        fired = asyncio.Event()

        async def handler() -> None:
            fired.set()

        scheduler.add_job("daily", "0 12 * * *", handler)
        await scheduler.start()
        try:
            await asyncio.wait_for(fired.wait(), timeout=2)
            await asyncio.sleep(0.05)
        finally:
            await scheduler.stop()

        job = scheduler.get_job("daily")
        assert job.runs == 1
        assert job.skipped == 0
        assert job.next_run == datetime(2024, 5, 16, 12, 0, tzinfo=DHAKA)


class TestCronDayFields:
    """Day-of-month and day-of-week combine like standard cron."""

    def test_both_restricted_matches_either(self):
        cron = CronExpression("0 9 1 * 1")  # the 1st, or any Monday

        assert cron.matches(datetime(2024, 5, 1, 9, 0, tzinfo=DHAKA))  # Wednesday the 1st
        assert cron.matches(datetime(2024, 5, 13, 9, 0, tzinfo=DHAKA))  # Monday
        assert not cron.matches(datetime(2024, 5, 14, 9, 0, tzinfo=DHAKA))

    def test_only_day_of_week_restricted(self):
        cron = CronExpression("0 9 * * 1")

        assert cron.matches(datetime(2024, 5, 13, 9, 0, tzinfo=DHAKA))
        assert not cron.matches(datetime(2024, 5, 1, 9, 0, tzinfo=DHAKA))

    def test_only_day_of_month_restricted(self):
        cron = CronExpression("0 9 1 * *")

        assert cron.matches(datetime(2024, 5, 1, 9, 0, tzinfo=DHAKA))
        assert not cron.matches(datetime(2024, 5, 13, 9, 0, tzinfo=DHAKA))
