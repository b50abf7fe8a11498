"""
Schedule Evaluator

Decides whether a channel schedule is due on a polling tick and computes the
next due instant across time zones and week-day patterns.
"""

import logging
import re
from datetime import datetime, time, timedelta
from typing import Any, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from .automation_models import ScheduleConfig, Weekday, normalize_days
from .timezone_clock import Instant, TimeZoneClock, ZonedTime, to_datetime, to_epoch_ms

TimeSlot = Tuple[int, int]

_SLOT_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

# Offsets 0..7 so a weekday whose only slot already passed today is found next week
SCAN_DAYS = 8


def parse_time_slot(value: Any) -> Optional[TimeSlot]:
    """Parse "HH:MM" into (hour, minute); None for anything unparseable"""
    if not isinstance(value, str):
        return None
    match = _SLOT_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def parse_time_slots(times: Optional[Iterable[Any]]) -> List[TimeSlot]:
    """Parse and de-duplicate slots, keeping first-seen order"""
    slots: List[TimeSlot] = []
    for value in times or []:
        slot = parse_time_slot(value)
        if slot is not None and slot not in slots:
            slots.append(slot)
    return slots


class ScheduleEvaluator:
    """Window-based due-ness checks and next-run computation"""

    def __init__(self, clock: TimeZoneClock, interval_minutes: int = 6):
        self.clock = clock
        self.interval_minutes = interval_minutes
        self.logger = logging.getLogger("autopilot.evaluator")

    def is_due(self, config: ScheduleConfig, now_utc: Optional[Instant] = None,
               interval_minutes: Optional[int] = None) -> bool:
        """True if at least one unsuppressed slot fell inside the current window"""
        return self.due_slot(config, now_utc, interval_minutes) is not None

    def due_slot(self, config: ScheduleConfig, now_utc: Optional[Instant] = None,
                 interval_minutes: Optional[int] = None) -> Optional[TimeSlot]:
        """The first slot making the schedule due, or None"""
        if not config.enabled or config.is_running:
            return None

        if interval_minutes is None:
            interval_minutes = self.interval_minutes
        if now_utc is None:
            now_utc = self.clock.utc_now()

        local_now = self.clock.now_in_zone(config.timezone, now_utc)
        weekday, _ = self.clock.weekday_in_zone(now_utc, config.timezone)
        if Weekday.parse(weekday) not in config.days_of_week:
            return None

        last_run_local = None
        if config.last_run_at:
            last_run_local = self.clock.now_in_zone(config.timezone, config.last_run_at)

        for hour, minute in parse_time_slots(config.times):
            diff = local_now.minute_of_day - (hour * 60 + minute)
            if not 0 <= diff <= interval_minutes:
                continue
            if self._already_ran(last_run_local, local_now, hour, minute):
                self.logger.debug(f"Slot {hour:02d}:{minute:02d} already ran today, skipping")
                continue
            return hour, minute

        return None

    @staticmethod
    def _already_ran(last_run_local: Optional[ZonedTime], local_now: ZonedTime,
                     hour: int, minute: int) -> bool:
        """A run on the same local date at or after the slot time consumes the slot"""
        if last_run_local is None or last_run_local.date() != local_now.date():
            return False
        return (last_run_local.hour, last_run_local.minute) >= (hour, minute)

    def compute_next_run(self, times: Iterable[Any], days_of_week: Iterable[Any],
                         timezone: Optional[str] = None, last_run_at: Optional[Instant] = None,
                         now_utc: Optional[Instant] = None) -> Optional[int]:
        """Earliest upcoming slot as epoch milliseconds, or None if nothing valid is scheduled"""
        slots = parse_time_slots(times)
        days = set(normalize_days(days_of_week))
        if not slots or not days:
            return None

        zone = self.clock.resolve_zone(timezone)
        if now_utc is None:
            now_utc = self.clock.utc_now()
        now_ms = to_epoch_ms(to_datetime(now_utc))

        today = self.clock.localize(now_utc, timezone).date()
        last_run_local = None
        if last_run_at:
            last_run_local = self.clock.localize(last_run_at, timezone).replace(
                tzinfo=None, second=0, microsecond=0)

        candidate: Optional[int] = None
        for day_offset in range(SCAN_DAYS):
            day = today + timedelta(days=day_offset)
            if Weekday.from_date(day) not in days:
                continue

            for hour, minute in slots:
                wall_clock = datetime.combine(day, time(hour, minute))
                if wall_clock == last_run_local:
                    continue
                instant = self._upcoming_instant(wall_clock, zone, now_ms)
                if instant is not None and (candidate is None or instant < candidate):
                    candidate = instant

        return candidate

    @staticmethod
    def _upcoming_instant(wall_clock: datetime, zone: ZoneInfo, now_ms: int) -> Optional[int]:
        """First occurrence of the wall-clock time in the zone strictly after now_ms"""
        # A wall-clock time repeated by a DST fall-back has a second occurrence at fold=1
        for fold in (0, 1):
            instant = to_epoch_ms(wall_clock.replace(tzinfo=zone, fold=fold))
            if instant > now_ms:
                return instant
        return None

    def next_run_for(self, config: ScheduleConfig, now_utc: Optional[Instant] = None) -> Optional[int]:
        return self.compute_next_run(config.times, config.days_of_week, config.timezone,
                                     config.last_run_at, now_utc)
