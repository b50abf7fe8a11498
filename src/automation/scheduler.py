"""
Automation Scheduler

Periodic driver that evaluates every enabled channel on each tick and runs
the due ones, plus the manual "run now" entry point.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from .automation_models import (
    Channel, ChannelRunResult, RunOutcome, RunResult, TickSummary
)
from .exceptions import (
    AutomationDisabled, CapacityReached, ChannelNotFound, ConcurrencyConflict, RunFailed
)
from .run_coordinator import RunCoordinator
from .schedule_evaluator import ScheduleEvaluator


class AutomationScheduler:
    """
    Automated channel scheduler.

    Features:
    - Window-based due-ness per channel, in the channel's own time zone
    - Per-channel failure isolation within a tick
    - Bounded cross-channel concurrency
    - Stale run-lock reclaim
    - Manual runs that bypass due-ness but respect the run lock
    """

    def __init__(self, channel_store, coordinator: RunCoordinator,
                 evaluator: ScheduleEvaluator, settings):
        self.channel_store = channel_store
        self.coordinator = coordinator
        self.evaluator = evaluator
        self.clock = evaluator.clock
        self.settings = settings
        self.logger = logging.getLogger("autopilot.scheduler")

        self.is_running = False
        self.last_summary: Optional[TickSummary] = None

    async def start_scheduler(self) -> None:
        """Start the automated scheduler loop"""
        if self.is_running:
            self.logger.warning("Scheduler already running")
            return

        self.is_running = True
        interval_seconds = self.settings.poll_interval_minutes * 60
        self.logger.info(
            f"Starting scheduler: every {self.settings.poll_interval_minutes} min, "
            f"due window {self.settings.due_window_minutes} min"
        )

        try:
            while self.is_running:
                try:
                    await self.run_scheduled_tick()
                except Exception as e:
                    # A failed tick never blocks the next one
                    self.logger.exception(f"Scheduler tick failed: {e}")

                await asyncio.sleep(interval_seconds)
        finally:
            self.is_running = False
            self.logger.info("Scheduler stopped")

    def stop_scheduler(self) -> None:
        """Stop the scheduler"""
        self.is_running = False
        self.logger.info("Stopping scheduler...")

    async def run_scheduled_tick(self) -> TickSummary:
        """Evaluate every enabled channel once and run the due ones"""
        start_time = time.time()
        now = self.clock.utc_now()
        default_zone = self.clock.default_zone

        self.logger.info(
            f"Running scheduled automation check at {now.isoformat()} "
            f"({self.clock.format_in_zone(now, default_zone)} {default_zone})"
        )

        # Listing failures propagate: the tick has not started iterating yet
        channels = self.channel_store.list_enabled()
        self.logger.info(f"Found {len(channels)} channels with automation enabled")

        semaphore = asyncio.Semaphore(self.settings.max_concurrent_channels)

        async def process(channel: Channel) -> Optional[ChannelRunResult]:
            async with semaphore:
                return await self._process_channel(channel, now)

        outcomes = await asyncio.gather(*(process(c) for c in channels))
        results = [r for r in outcomes if r is not None]

        summary = TickSummary(
            timestamp=now.isoformat(),
            timezone=default_zone,
            timezone_time=self.clock.format_in_zone(now, default_zone),
            evaluated=len(channels),
            processed=len(results),
            jobs_created=sum(1 for r in results if r.job_id),
            errors=sum(1 for r in results if r.error and r.outcome != RunOutcome.ALREADY_RUNNING),
            duration_seconds=time.time() - start_time,
            results=results,
        )
        self.last_summary = summary

        self.logger.info(
            f"Processed {summary.processed} channels, {summary.jobs_created} jobs created, "
            f"{summary.errors} errors in {summary.duration_seconds:.1f}s"
        )
        return summary

    async def _process_channel(self, channel: Channel, now: datetime) -> Optional[ChannelRunResult]:
        """Evaluate and possibly run one channel; never raises"""
        timezone = self.clock.zone_name(channel.automation.timezone if channel.automation else None)
        try:
            if self._reclaim_stale_lock(channel, now):
                channel = self.channel_store.get(channel.id)
                if channel is None or channel.automation is None:
                    return None

            if not self.evaluator.is_due(channel.automation, now, self.settings.due_window_minutes):
                return None

            self.logger.info(f"Channel {channel.id} ({channel.name}) is due (timezone: {timezone})")
            result = await self.coordinator.execute(channel)
            return ChannelRunResult(
                channel_id=channel.id,
                channel_name=channel.name,
                timezone=timezone,
                job_id=result.job_id if result.success else None,
                outcome=result.outcome,
                error=result.error,
            )

        except Exception as e:
            self.logger.exception(f"Error processing channel {channel.id}: {e}")
            return ChannelRunResult(
                channel_id=channel.id,
                channel_name=channel.name,
                timezone=timezone,
                outcome=RunOutcome.FAILED,
                error=str(e),
            )

    def _reclaim_stale_lock(self, channel: Channel, now: datetime) -> bool:
        """Release a lock held longer than stale_lock_minutes; True if one was released"""
        schedule = channel.automation
        stale_minutes = self.settings.stale_lock_minutes
        if not stale_minutes or not schedule.is_running or not schedule.locked_at:
            return False

        age_minutes = (now.timestamp() * 1000 - schedule.locked_at) / 60000
        if age_minutes < stale_minutes:
            return False

        self.logger.warning(
            f"Channel {channel.id}: run {schedule.run_id} held the lock for "
            f"{age_minutes:.0f} min, reclaiming"
        )
        return self.coordinator.release_lock(channel.id, schedule.run_id)

    async def run_now(self, channel_id: str) -> RunResult:
        """Manually trigger a run, bypassing due-ness"""
        channel = self.channel_store.get(channel_id)
        if channel is None:
            raise ChannelNotFound(channel_id)
        if channel.automation is None or not channel.automation.enabled:
            raise AutomationDisabled(channel_id)
        if channel.automation.is_running:
            raise ConcurrencyConflict(channel_id)

        self.logger.info(f"Manual run requested for channel {channel_id}")
        result = await self.coordinator.execute(channel)

        if result.outcome == RunOutcome.ALREADY_RUNNING:
            raise ConcurrencyConflict(channel_id)
        if result.outcome == RunOutcome.SKIPPED_CAPACITY:
            raise CapacityReached(channel_id)
        if not result.success:
            raise RunFailed(result)
        return result

    def get_status(self) -> List[Dict[str, Any]]:
        """Channel overview with next run times in each channel's zone"""
        rows = []
        for channel in self.channel_store.list_all():
            schedule = channel.automation
            if schedule is None:
                rows.append({"id": channel.id, "name": channel.name, "enabled": False,
                             "running": False, "timezone": "", "next_run": "-", "last_run": "-"})
                continue

            next_run_at = schedule.next_run_at
            if schedule.enabled and next_run_at is None:
                next_run_at = self.evaluator.next_run_for(schedule)

            rows.append({
                "id": channel.id,
                "name": channel.name,
                "enabled": schedule.enabled,
                "running": schedule.is_running,
                "timezone": self.clock.zone_name(schedule.timezone),
                "next_run": self._format(next_run_at, schedule.timezone),
                "last_run": self._format(schedule.last_run_at, schedule.timezone),
            })
        return rows

    def _format(self, instant: Optional[int], zone: Optional[str]) -> str:
        return self.clock.format_in_zone(instant, zone) if instant else "-"
