"""
Automation Data Models

Pydantic models for channel schedules, runs and scheduler ticks.
"""

import time
from datetime import date
from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

DEFAULT_TIMEZONE = "Asia/Almaty"  # UTC+5/+6 depending on tzdata release


def now_ms() -> int:
    """Current instant as epoch milliseconds"""
    return int(time.time() * 1000)


class Weekday(str, Enum):
    """Day of week; ordinal 1 = Sunday"""
    SUN = "Sun"
    MON = "Mon"
    TUE = "Tue"
    WED = "Wed"
    THU = "Thu"
    FRI = "Fri"
    SAT = "Sat"

    @property
    def ordinal(self) -> int:
        return WEEKDAY_ORDER.index(self) + 1

    @classmethod
    def parse(cls, token: Any) -> Optional["Weekday"]:
        """Parse an abbreviation ("Tue") or a 1-7 ordinal ("3" or 3). Returns None if neither."""
        if isinstance(token, Weekday):
            return token
        if isinstance(token, bool):
            return None
        if isinstance(token, int):
            return WEEKDAY_ORDER[token - 1] if 1 <= token <= 7 else None
        if not isinstance(token, str):
            return None

        text = token.strip()
        if text.isdecimal():
            try:
                return cls.parse(int(text))
            except ValueError:
                return None

        for day in WEEKDAY_ORDER:
            if day.value.lower() == text.lower():
                return day
        return None

    @classmethod
    def from_date(cls, value: date) -> "Weekday":
        # date.weekday(): Monday == 0 ... Sunday == 6
        return WEEKDAY_ORDER[(value.weekday() + 1) % 7]


WEEKDAY_ORDER = [Weekday.SUN, Weekday.MON, Weekday.TUE, Weekday.WED,
                 Weekday.THU, Weekday.FRI, Weekday.SAT]


def normalize_days(tokens: Optional[Iterable[Any]]) -> List[Weekday]:
    """Normalize mixed day tokens, silently dropping anything unparseable"""
    days = set()
    for token in tokens or []:
        day = Weekday.parse(token)
        if day is not None:
            days.add(day)
    return sorted(days, key=lambda d: d.ordinal)


class ScheduleConfig(BaseModel):
    """Per-channel automation schedule and run bookkeeping"""
    enabled: bool = False

    # Timing
    times: List[str] = Field(default_factory=list)  # local "HH:MM" entries
    days_of_week: List[Weekday] = Field(default_factory=list)
    timezone: Optional[str] = None  # None: configured default zone

    # Run bookkeeping (epoch milliseconds)
    last_run_at: Optional[int] = None
    next_run_at: Optional[int] = None

    # Run lock
    is_running: bool = False
    run_id: Optional[str] = None
    locked_at: Optional[int] = None

    # Generation settings
    max_active_tasks: Optional[int] = Field(default=None, ge=1)  # None: configured default
    use_only_fresh_ideas: bool = False
    auto_approve_and_upload: bool = False

    @field_validator("times", mode="before")
    @classmethod
    def _drop_blank_times(cls, value):
        if value is None:
            return []
        return [str(t).strip() for t in value if t is not None and str(t).strip()]

    @field_validator("days_of_week", mode="before")
    @classmethod
    def _normalize_days(cls, value):
        if isinstance(value, (str, int)):
            value = [value]
        return normalize_days(value)

    @field_validator("timezone", mode="before")
    @classmethod
    def _blank_timezone(cls, value):
        if value is None:
            return None
        return str(value).strip() or None

    @field_serializer("days_of_week")
    def _serialize_days(self, days: List[Weekday]) -> List[str]:
        # Both token forms are written so readers matching either one keep working
        tokens: List[str] = []
        for day in days:
            tokens.extend([day.value, str(day.ordinal)])
        return tokens


class Channel(BaseModel):
    """A content channel with optional automation"""
    id: str
    name: str
    description: str = ""
    language: str = "ru"
    duration_seconds: int = 8

    # Prompt templates
    idea_prompt_template: str = ""
    video_prompt_template: str = ""

    # Upload targets
    gdrive_folder_id: Optional[str] = None
    external_url: Optional[str] = None

    automation: Optional[ScheduleConfig] = None


class JobStatus(str, Enum):
    """Video job status as reported by the render/upload pipeline"""
    QUEUED = "queued"
    SENDING = "sending"
    RENDERING = "rendering"
    DOWNLOADING = "downloading"
    READY = "ready"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    REJECTED = "rejected"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = {JobStatus.UPLOADED, JobStatus.REJECTED, JobStatus.FAILED}


class VideoJob(BaseModel):
    """A persisted video generation job"""
    id: str
    prompt: str
    channel_id: str
    channel_name: str
    idea_text: Optional[str] = None
    video_title: Optional[str] = None

    status: JobStatus = JobStatus.QUEUED
    is_auto: bool = False
    auto_approve_and_upload: bool = False

    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)
    error_message: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status not in TERMINAL_JOB_STATUSES


class RunStep(str, Enum):
    """Run pipeline states"""
    LOCKING = "locking"
    CAPACITY_CHECK = "capacity_check"
    IDEA_GENERATION = "idea_generation"
    PROMPT_GENERATION = "prompt_generation"
    JOB_CREATION = "job_creation"
    COMMITTING = "committing"
    REVERTING = "reverting"


class RunOutcome(str, Enum):
    """How a run attempt ended"""
    CREATED = "created"
    SKIPPED_CAPACITY = "skipped_capacity"
    ALREADY_RUNNING = "already_running"
    FAILED = "failed"


class RunResult(BaseModel):
    """Result of one run attempt for a channel"""
    channel_id: str
    channel_name: str
    run_id: Optional[str] = None
    outcome: RunOutcome

    job_id: Optional[str] = None
    error: Optional[str] = None
    failed_step: Optional[RunStep] = None

    started_at: int = Field(default_factory=now_ms)
    next_run_at: Optional[int] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.outcome == RunOutcome.CREATED


class ChannelRunResult(BaseModel):
    """Per-channel entry of a scheduler tick summary"""
    channel_id: str
    channel_name: str
    timezone: str
    job_id: Optional[str] = None
    outcome: Optional[RunOutcome] = None
    error: Optional[str] = None


class TickSummary(BaseModel):
    """Aggregate result of one scheduler tick"""
    timestamp: str
    timezone: str
    timezone_time: str

    evaluated: int = 0
    processed: int = 0
    jobs_created: int = 0
    errors: int = 0
    duration_seconds: float = 0.0

    results: List[ChannelRunResult] = Field(default_factory=list)
