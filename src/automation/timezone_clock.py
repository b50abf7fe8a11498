"""
Time Zone Clock

Resolves the current instant into zone-local wall-clock components using the
IANA database, independent of the host's local timezone.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Callable, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .automation_models import DEFAULT_TIMEZONE, Weekday
from .exceptions import InvalidTimezone

Instant = Union[datetime, int, float]

logger = logging.getLogger("autopilot.clock")


def to_datetime(instant: Instant) -> datetime:
    """Convert epoch milliseconds or a datetime into an aware UTC datetime"""
    if isinstance(instant, datetime):
        if instant.tzinfo is None:
            raise ValueError("Naive datetimes are ambiguous; pass an aware datetime")
        return instant.astimezone(timezone.utc)
    return datetime.fromtimestamp(instant / 1000, tz=timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


@lru_cache(maxsize=64)
def get_zone(name: str) -> ZoneInfo:
    """Look up an IANA zone, raising InvalidTimezone for unknown identifiers"""
    if not name:
        raise InvalidTimezone(str(name))
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezone(name) from e


@dataclass(frozen=True)
class ZonedTime:
    """Wall-clock components as seen by an observer in a zone"""
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int

    @property
    def minute_of_day(self) -> int:
        return self.hour * 60 + self.minute

    def date(self) -> date:
        return date(self.year, self.month, self.day)

    @classmethod
    def from_datetime(cls, value: datetime) -> "ZonedTime":
        return cls(value.year, value.month, value.day, value.hour, value.minute, value.second)


class TimeZoneClock:
    """Zone-aware clock with an injectable source of "now" """

    def __init__(self, default_zone: str = DEFAULT_TIMEZONE,
                 now_fn: Optional[Callable[[], datetime]] = None):
        # Fail fast on a misconfigured default; everything else falls back to it
        get_zone(default_zone)
        self.default_zone = default_zone
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    def utc_now(self) -> datetime:
        return to_datetime(self._now_fn())

    def now_ms(self) -> int:
        return to_epoch_ms(self.utc_now())

    def resolve_zone(self, zone: Optional[str]) -> ZoneInfo:
        """Return the requested zone, or the default zone if it is unknown"""
        if not zone:
            return get_zone(self.default_zone)
        try:
            return get_zone(zone)
        except InvalidTimezone as e:
            logger.warning(f"{e}; falling back to {self.default_zone}")
            return get_zone(self.default_zone)

    def zone_name(self, zone: Optional[str]) -> str:
        """Identifier of the zone actually used for `zone`"""
        return self.resolve_zone(zone).key

    def localize(self, instant: Instant, zone: Optional[str]) -> datetime:
        """Aware datetime for the instant as observed in the zone"""
        return to_datetime(instant).astimezone(self.resolve_zone(zone))

    def now_in_zone(self, zone: Optional[str], instant: Optional[Instant] = None) -> ZonedTime:
        """Wall-clock components in the zone for the current (or given) instant"""
        if instant is None:
            instant = self.utc_now()
        return ZonedTime.from_datetime(self.localize(instant, zone))

    def weekday_in_zone(self, instant: Instant, zone: Optional[str]) -> Tuple[str, int]:
        """Weekday abbreviation and 1-7 ordinal (1 = Sunday) in the zone"""
        day = Weekday.from_date(self.localize(instant, zone).date())
        return day.value, day.ordinal

    def format_in_zone(self, instant: Instant, zone: Optional[str]) -> str:
        """Display string for logs and notifications only"""
        return self.localize(instant, zone).strftime("%d.%m.%Y, %H:%M:%S")
