"""
Run Coordinator

Drives one automated run for a channel: lock, capacity check,
idea -> prompt -> job pipeline, then commit or revert.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Iterable, List, Optional

from ..content_generation.content_models import Idea, PromptResult, ProviderError
from .automation_models import (
    Channel, RunOutcome, RunResult, RunStep, ScheduleConfig, VideoJob
)
from .exceptions import ChannelNotFound, CollaboratorFailure, ConcurrencyConflict
from .schedule_evaluator import ScheduleEvaluator


def is_used_idea(idea: Idea, used_ideas: Iterable[str]) -> bool:
    """Case-insensitive containment, in either direction, against title or description"""
    candidates = [text.strip().lower() for text in (idea.title, idea.description) if text.strip()]
    for used in used_ideas:
        used = used.strip().lower()
        if not used:
            continue
        for candidate in candidates:
            if candidate in used or used in candidate:
                return True
    return False


def filter_fresh_ideas(ideas: List[Idea], used_ideas: List[str]) -> List[Idea]:
    return [idea for idea in ideas if not is_used_idea(idea, used_ideas)]


class RunCoordinator:
    """
    Per-channel run lifecycle.

    The `is_running`/`run_id` pair on the stored schedule is the only lock;
    nothing process-wide is held while collaborators are awaited. Every run
    ends in exactly one of: commit (job created), revert (lock released), or
    no-op when the lock could not be taken.
    """

    def __init__(self, channel_store, job_store, idea_generator, prompt_generator,
                 evaluator: ScheduleEvaluator, settings, notifier=None,
                 notify_chat_id: Optional[str] = None):
        self.channel_store = channel_store
        self.job_store = job_store
        self.idea_generator = idea_generator
        self.prompt_generator = prompt_generator
        self.evaluator = evaluator
        self.clock = evaluator.clock
        self.settings = settings
        self.notifier = notifier
        self.notify_chat_id = notify_chat_id
        self.logger = logging.getLogger("autopilot.coordinator")

    async def run(self, channel: Channel) -> Optional[str]:
        """Run the pipeline and return the created job id, or None"""
        result = await self.execute(channel)
        return result.job_id if result.success else None

    async def execute(self, channel: Channel) -> RunResult:
        """Run the pipeline and report how it ended"""
        schedule = channel.automation or ScheduleConfig()
        run_id = f"auto-{self.clock.now_ms()}-{uuid.uuid4().hex[:9]}"
        started_at = self.clock.now_ms()
        start_time = time.time()

        result = RunResult(
            channel_id=channel.id,
            channel_name=channel.name,
            run_id=run_id,
            outcome=RunOutcome.FAILED,
            started_at=started_at,
        )

        self.logger.info(
            f"[{channel.id}] Starting run {run_id} at "
            f"{self._local_time(schedule, started_at)}; "
            f"times={schedule.times} days={[d.value for d in schedule.days_of_week]}"
        )

        try:
            self._acquire_lock(channel, run_id, started_at)
        except ConcurrencyConflict as e:
            self.logger.info(f"[{channel.id}] {e}")
            result.outcome = RunOutcome.ALREADY_RUNNING
            result.error = str(e)
            return result
        except Exception as e:
            self.logger.error(f"[{channel.id}] Failed to acquire run lock: {e}")
            result.error = str(e)
            result.failed_step = RunStep.LOCKING
            return result

        try:
            if not self._has_capacity(channel, schedule):
                self._revert(channel, run_id)
                result.outcome = RunOutcome.SKIPPED_CAPACITY
                return result

            idea = await self._select_idea(channel, schedule)
            prompt_result = await self._generate_prompt(channel, idea)
            job = self._create_job(channel, schedule, idea, prompt_result)
            result.job_id = job.id
            result.next_run_at = self._commit(channel, run_id, started_at)
            result.outcome = RunOutcome.CREATED

        except CollaboratorFailure as e:
            self.logger.error(f"[{channel.id}] Run {run_id} failed during {e.step.value}: {e.cause}")
            self._revert(channel, run_id)
            result.error = str(e.cause)
            result.failed_step = e.step
            await self._notify(
                f'[AUTOMATION] Channel "{channel.name}" ({channel.id}): automated run failed at '
                f"{self._local_time(schedule)}. Error: {result.error}"
            )
            return result

        finally:
            result.duration_seconds = time.time() - start_time

        self.logger.info(f"[{channel.id}] Created automated job {result.job_id}")
        await self._notify(
            f'[AUTOMATION] Channel "{channel.name}" ({channel.id}): automated run started at '
            f"{self._local_time(schedule)}. Status: success. Job ID: {result.job_id}"
        )
        return result

    def release_lock(self, channel_id: str, run_id: Optional[str] = None) -> bool:
        """
        Clear a channel's run lock.

        With `run_id`, only the lock held by that run is cleared. Used by
        job-status consumers when locks are kept after success, and by
        stale-lock reclaim.
        """
        expected = {"run_id": run_id} if run_id else None
        try:
            updated = self.channel_store.update(channel_id, {"automation": self._idle_fields()}, expected)
        except ConcurrencyConflict as e:
            self.logger.info(f"Lock not released: {e}")
            return False

        if updated is None:
            return False
        self.logger.info(f"[{channel_id}] Run lock released")
        return True

    @contextmanager
    def _step(self, step: RunStep):
        """Tag any failure inside the block with the pipeline step"""
        try:
            yield
        except CollaboratorFailure:
            raise
        except Exception as e:
            raise CollaboratorFailure(step, e) from e

    @staticmethod
    def _idle_fields() -> dict:
        return {"is_running": False, "run_id": None, "locked_at": None}

    def _acquire_lock(self, channel: Channel, run_id: str, started_at: int) -> None:
        updated = self.channel_store.update(
            channel.id,
            {"automation": {"is_running": True, "run_id": run_id, "locked_at": started_at}},
            expected={"is_running": False},
        )
        if updated is None:
            raise ChannelNotFound(channel.id)

    def _has_capacity(self, channel: Channel, schedule: ScheduleConfig) -> bool:
        with self._step(RunStep.CAPACITY_CHECK):
            active_count = self.job_store.count_active(channel.id)

        max_active = schedule.max_active_tasks or self.settings.default_max_active_tasks
        if active_count >= max_active:
            self.logger.info(
                f"[{channel.id}] {active_count} active jobs, max is {max_active}; skipping run"
            )
            return False
        return True

    def _get_used_ideas(self, channel_id: str) -> List[str]:
        """Idea texts of previous jobs for the channel"""
        try:
            jobs = self.job_store.list_all()
        except Exception as e:
            self.logger.error(f"[{channel_id}] Could not load used ideas: {e}")
            return []
        return [job.idea_text for job in jobs if job.channel_id == channel_id and job.idea_text]

    async def _select_idea(self, channel: Channel, schedule: ScheduleConfig) -> Idea:
        count = self.settings.ideas_per_batch

        with self._step(RunStep.IDEA_GENERATION):
            used_ideas = self._get_used_ideas(channel.id) if schedule.use_only_fresh_ideas else []
            ideas = await self.idea_generator.generate(channel, None, count)

            if used_ideas:
                ideas = filter_fresh_ideas(ideas, used_ideas)

            if not ideas:
                self.logger.warning(f"[{channel.id}] No fresh ideas, using any available")
                ideas = await self.idea_generator.generate(channel, None, count)

            if not ideas:
                raise ProviderError("Failed to generate ideas")

        idea = ideas[0]
        self.logger.info(f"[{channel.id}] Selected idea: {idea.title}")
        return idea

    async def _generate_prompt(self, channel: Channel, idea: Idea) -> PromptResult:
        with self._step(RunStep.PROMPT_GENERATION):
            return await self.prompt_generator.generate(channel, idea)

    def _create_job(self, channel: Channel, schedule: ScheduleConfig, idea: Idea,
                    prompt_result: PromptResult) -> VideoJob:
        with self._step(RunStep.JOB_CREATION):
            job = self.job_store.create(
                prompt_result.render_prompt,
                channel.id,
                channel.name,
                idea.as_text(),
                prompt_result.display_title,
            )
            updated = self.job_store.update(job.id, {
                "is_auto": True,
                "auto_approve_and_upload": schedule.auto_approve_and_upload,
            })
            if updated is None:
                raise RuntimeError(f"Job {job.id} disappeared before it was marked automatic")
            return updated

    def _commit(self, channel: Channel, run_id: str, started_at: int) -> Optional[int]:
        """Record the successful run; returns the recomputed next run"""
        with self._step(RunStep.COMMITTING):
            current = self.channel_store.get(channel.id)
            if current is None:
                raise ChannelNotFound(channel.id)
            schedule = current.automation or ScheduleConfig()

            next_run_at = self.evaluator.compute_next_run(
                schedule.times, schedule.days_of_week, schedule.timezone,
                last_run_at=started_at, now_utc=self.clock.utc_now(),
            )

            changes = {"last_run_at": started_at, "next_run_at": next_run_at}
            if self.settings.release_lock_on_success:
                changes.update(self._idle_fields())
            else:
                changes.update(is_running=True, run_id=run_id)

            if self.channel_store.update(channel.id, {"automation": changes}) is None:
                raise ChannelNotFound(channel.id)

        if next_run_at:
            self.logger.info(
                f"[{channel.id}] Next run scheduled for "
                f"{self._local_time(schedule, next_run_at)}"
            )
        return next_run_at

    def _revert(self, channel: Channel, run_id: str) -> None:
        """Release the lock unconditionally; a failure here is only logged"""
        try:
            self.channel_store.update(channel.id, {"automation": self._idle_fields()})
        except Exception as e:
            self.logger.error(f"[{channel.id}] Failed to reset run lock for {run_id}: {e}")

    def _local_time(self, schedule: ScheduleConfig, instant=None) -> str:
        if instant is None:
            instant = self.clock.utc_now()
        return (f"{self.clock.format_in_zone(instant, schedule.timezone)} "
                f"({self.clock.zone_name(schedule.timezone)})")

    async def _notify(self, message: str) -> None:
        """Best-effort; never changes the run outcome"""
        if self.notifier is None or not self.notify_chat_id:
            return
        try:
            await self.notifier.send(self.notify_chat_id, message)
        except Exception as e:
            self.logger.warning(f"Failed to send notification: {e}")
