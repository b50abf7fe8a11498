"""Scheduler ticks, manual runs and status"""

import asyncio
from datetime import timedelta

import pytest

from src.automation.automation_models import RunOutcome, RunStep
from src.automation.exceptions import (
    AutomationDisabled, CapacityReached, ChannelNotFound, ConcurrencyConflict, RunFailed
)
from src.automation.run_coordinator import RunCoordinator
from src.automation.schedule_evaluator import ScheduleEvaluator
from src.automation.scheduler import AutomationScheduler
from src.automation.timezone_clock import to_epoch_ms
from src.utils.config import AutomationConfig

from .conftest import FakeIdeaGenerator, FakePromptGenerator, local_ms


class ExplodingEvaluator(ScheduleEvaluator):
    """Raises while evaluating schedules in one particular zone"""

    def __init__(self, clock, fail_zone: str):
        super().__init__(clock, interval_minutes=6)
        self.fail_zone = fail_zone

    def is_due(self, config, now_utc=None, interval_minutes=None):
        if config.timezone == self.fail_zone:
            raise RuntimeError("corrupt schedule")
        return super().is_due(config, now_utc, interval_minutes)


class TestScheduledTick:

    @pytest.mark.asyncio
    async def test_tick_isolates_channel_failures(self, clock, channel_store, job_store, settings,
                                                  make_channel):
        evaluator = ExplodingEvaluator(clock, fail_zone="Europe/London")
        coordinator = RunCoordinator(channel_store, job_store, FakeIdeaGenerator(),
                                     FakePromptGenerator(), evaluator, settings)
        scheduler = AutomationScheduler(channel_store, coordinator, evaluator, settings)

        make_channel("due", "Due Channel")
        make_channel("later", "Later Channel", times=["15:00"])
        make_channel("broken", "Broken Channel", timezone="Europe/London")

        summary = await scheduler.run_scheduled_tick()

        assert summary.evaluated == 3
        assert summary.processed == 2
        assert summary.jobs_created == 1
        assert summary.errors == 1

        by_id = {r.channel_id: r for r in summary.results}
        assert by_id["due"].outcome == RunOutcome.CREATED
        assert job_store.get(by_id["due"].job_id) is not None
        assert by_id["broken"].outcome == RunOutcome.FAILED
        assert "corrupt schedule" in by_id["broken"].error
        assert "later" not in by_id

        assert channel_store.get("due").automation.last_run_at is not None
        assert channel_store.get("later").automation.last_run_at is None
        assert scheduler.last_summary is summary

    @pytest.mark.asyncio
    async def test_disabled_channels_are_not_evaluated(self, scheduler, make_channel, job_store):
        make_channel("off", "Off Channel", enabled=False)

        summary = await scheduler.run_scheduled_tick()

        assert summary.evaluated == 0
        assert job_store.list_all() == []

    @pytest.mark.asyncio
    async def test_summary_reports_default_zone_time(self, scheduler):
        summary = await scheduler.run_scheduled_tick()
        assert summary.timezone == "Asia/Almaty"
        assert summary.timezone_time == "01.01.2024, 10:03:00"

    @pytest.mark.asyncio
    async def test_second_tick_in_window_does_not_rerun(self, scheduler, make_channel, frozen_now,
                                                        job_store):
        make_channel()
        first = await scheduler.run_scheduled_tick()
        frozen_now.value = frozen_now.value + timedelta(minutes=2)
        second = await scheduler.run_scheduled_tick()

        assert first.jobs_created == 1
        assert second.processed == 0
        assert len(job_store.list_all()) == 1

    @pytest.mark.asyncio
    async def test_listing_failure_propagates(self, scheduler, channel_store, monkeypatch):
        def fail():
            raise OSError("disk gone")

        monkeypatch.setattr(channel_store, "list_enabled", fail)
        with pytest.raises(OSError):
            await scheduler.run_scheduled_tick()


class TestStaleLockReclaim:

    @pytest.fixture
    def reclaiming_scheduler(self, channel_store, coordinator, evaluator):
        settings = AutomationConfig(stale_lock_minutes=30)
        return AutomationScheduler(channel_store, coordinator, evaluator, settings)

    def _lock(self, channel_store, channel_id, locked_at):
        channel_store.update(channel_id, {"automation": {
            "is_running": True, "run_id": "old-run", "locked_at": locked_at,
        }})

    @pytest.mark.asyncio
    async def test_stale_lock_is_released(self, reclaiming_scheduler, make_channel, channel_store,
                                          frozen_now):
        make_channel(times=["15:00"])
        self._lock(channel_store, "space-facts", to_epoch_ms(frozen_now.value - timedelta(minutes=45)))

        summary = await reclaiming_scheduler.run_scheduled_tick()

        assert summary.processed == 0
        assert not channel_store.get("space-facts").automation.is_running

    @pytest.mark.asyncio
    async def test_due_channel_runs_after_reclaim(self, reclaiming_scheduler, make_channel,
                                                  channel_store, job_store, frozen_now):
        make_channel()
        self._lock(channel_store, "space-facts", to_epoch_ms(frozen_now.value - timedelta(minutes=45)))

        summary = await reclaiming_scheduler.run_scheduled_tick()

        assert summary.processed == 1
        assert summary.jobs_created == 1
        result = summary.results[0]
        assert result.outcome == RunOutcome.CREATED
        assert job_store.get(result.job_id) is not None
        schedule = channel_store.get("space-facts").automation
        assert schedule.last_run_at == to_epoch_ms(frozen_now.value)
        assert not schedule.is_running

    @pytest.mark.asyncio
    async def test_recent_lock_is_kept(self, reclaiming_scheduler, make_channel, channel_store,
                                       frozen_now):
        make_channel()
        self._lock(channel_store, "space-facts", to_epoch_ms(frozen_now.value - timedelta(minutes=10)))

        summary = await reclaiming_scheduler.run_scheduled_tick()

        assert summary.processed == 0
        schedule = channel_store.get("space-facts").automation
        assert schedule.is_running
        assert schedule.run_id == "old-run"


class TestRunNow:

    @pytest.mark.asyncio
    async def test_runs_outside_schedule(self, scheduler, make_channel, job_store):
        # Saturday-only slot; the clock says Monday
        make_channel(times=["23:00"], days_of_week=["Sat"])

        result = await scheduler.run_now("space-facts")

        assert result.success
        assert job_store.get(result.job_id).is_auto

    @pytest.mark.asyncio
    async def test_unknown_channel(self, scheduler):
        with pytest.raises(ChannelNotFound):
            await scheduler.run_now("nope")

    @pytest.mark.asyncio
    async def test_disabled_channel(self, scheduler, make_channel, channel_store):
        make_channel(enabled=False)
        channel_store.create("No Schedule", channel_id="bare")

        with pytest.raises(AutomationDisabled):
            await scheduler.run_now("space-facts")
        with pytest.raises(AutomationDisabled):
            await scheduler.run_now("bare")

    @pytest.mark.asyncio
    async def test_running_channel(self, scheduler, make_channel):
        make_channel(is_running=True, run_id="busy")
        with pytest.raises(ConcurrencyConflict):
            await scheduler.run_now("space-facts")

    @pytest.mark.asyncio
    async def test_capacity_reached(self, scheduler, make_channel, job_store):
        channel = make_channel(max_active_tasks=1)
        job_store.create("p", channel.id, channel.name)

        with pytest.raises(CapacityReached):
            await scheduler.run_now("space-facts")

    @pytest.mark.asyncio
    async def test_pipeline_failure(self, clock, channel_store, job_store, evaluator, settings,
                                    make_channel, provider_error):
        coordinator = RunCoordinator(channel_store, job_store, FakeIdeaGenerator(),
                                     FakePromptGenerator(error=provider_error), evaluator, settings)
        scheduler = AutomationScheduler(channel_store, coordinator, evaluator, settings)
        make_channel()

        with pytest.raises(RunFailed) as exc_info:
            await scheduler.run_now("space-facts")

        assert exc_info.value.result.failed_step == RunStep.PROMPT_GENERATION
        assert not channel_store.get("space-facts").automation.is_running


@pytest.mark.asyncio
async def test_failed_tick_does_not_stop_loop(scheduler, monkeypatch):
    calls = []

    async def flaky_tick():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("store unavailable")
        scheduler.stop_scheduler()

    async def no_sleep(seconds):
        return None

    monkeypatch.setattr(scheduler, "run_scheduled_tick", flaky_tick)
    monkeypatch.setattr(asyncio, "sleep", no_sleep)

    await scheduler.start_scheduler()

    assert len(calls) == 2
    assert not scheduler.is_running


def test_get_status(scheduler, make_channel, channel_store):
    make_channel(last_run_at=local_ms(2023, 12, 27, 10, 0))
    channel_store.create("Plain", channel_id="plain")

    rows = {row["id"]: row for row in scheduler.get_status()}

    assert rows["plain"]["enabled"] is False
    assert rows["plain"]["next_run"] == "-"

    row = rows["space-facts"]
    assert row["enabled"] is True
    assert row["running"] is False
    assert row["timezone"] == "Asia/Almaty"
    assert row["last_run"] == "27.12.2023, 10:00:00"
    assert row["next_run"] == "03.01.2024, 10:00:00"
