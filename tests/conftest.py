"""Shared fixtures: frozen clock, file-backed stores and fake collaborators"""

from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

import pytest

from src.automation.run_coordinator import RunCoordinator
from src.automation.schedule_evaluator import ScheduleEvaluator
from src.automation.scheduler import AutomationScheduler
from src.automation.timezone_clock import TimeZoneClock, to_epoch_ms
from src.content_generation.content_models import Idea, PromptResult, ProviderError
from src.storage.channel_store import ChannelStore
from src.storage.job_store import JobStore
from src.utils.config import AutomationConfig

ZONE = "Asia/Almaty"


def local(year, month, day, hour, minute, zone: str = ZONE) -> datetime:
    """Aware datetime for a wall-clock time in a zone"""
    return datetime(year, month, day, hour, minute, tzinfo=ZoneInfo(zone))


def local_ms(year, month, day, hour, minute, zone: str = ZONE) -> int:
    return to_epoch_ms(local(year, month, day, hour, minute, zone))


class FrozenTime:
    """Settable source of "now" for the clock"""

    def __init__(self, value: datetime):
        self.value = value

    def __call__(self) -> datetime:
        return self.value


class FakeIdeaGenerator:
    def __init__(self, ideas: Optional[List[Idea]] = None, error: Optional[Exception] = None):
        self.ideas = ideas if ideas is not None else [
            Idea(title="Northern lights", description="Aurora over the steppe"),
            Idea(title="Mars rovers", description="A day in the life of a rover"),
        ]
        self.error = error
        self.calls = []

    async def generate(self, channel, previous_idea=None, count=5):
        self.calls.append((channel.id, count))
        if self.error:
            raise self.error
        return list(self.ideas)


class FakePromptGenerator:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls = []

    async def generate(self, channel, idea):
        self.calls.append((channel.id, idea.title))
        if self.error:
            raise self.error
        return PromptResult(render_prompt=f"Cinematic shot: {idea.title}",
                            display_title=idea.title.upper())


class FakeNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages = []

    async def send(self, chat_target, message):
        if self.fail:
            raise RuntimeError("telegram is down")
        self.messages.append((chat_target, message))


@pytest.fixture
def frozen_now():
    # 2024-01-01 is a Monday
    return FrozenTime(local(2024, 1, 1, 10, 3))


@pytest.fixture
def clock(frozen_now):
    return TimeZoneClock(ZONE, now_fn=frozen_now)


@pytest.fixture
def evaluator(clock):
    return ScheduleEvaluator(clock, interval_minutes=6)


@pytest.fixture
def settings():
    return AutomationConfig(default_timezone=ZONE)


@pytest.fixture
def channel_store(tmp_path):
    return ChannelStore(str(tmp_path / "data"))


@pytest.fixture
def job_store(tmp_path):
    return JobStore(str(tmp_path / "data"))


@pytest.fixture
def idea_generator():
    return FakeIdeaGenerator()


@pytest.fixture
def prompt_generator():
    return FakePromptGenerator()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def coordinator(channel_store, job_store, idea_generator, prompt_generator, evaluator, settings, notifier):
    return RunCoordinator(channel_store, job_store, idea_generator, prompt_generator,
                          evaluator, settings, notifier=notifier, notify_chat_id="debug-chat")


@pytest.fixture
def scheduler(channel_store, coordinator, evaluator, settings):
    return AutomationScheduler(channel_store, coordinator, evaluator, settings)


@pytest.fixture
def make_channel(channel_store):
    """Create a stored channel with an automation schedule"""

    def _make(channel_id: str = "space-facts", name: str = "Space Facts", **automation):
        schedule = {
            "enabled": True,
            "times": ["10:00"],
            "days_of_week": ["Mon", "Wed"],
            "timezone": ZONE,
        }
        schedule.update(automation)
        return channel_store.create(name, channel_id=channel_id, automation=schedule)

    return _make


@pytest.fixture
def provider_error():
    return ProviderError("model overloaded")
