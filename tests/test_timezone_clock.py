"""Zone-local wall-clock resolution"""

from datetime import datetime

import pytest

from src.automation.exceptions import InvalidTimezone
from src.automation.timezone_clock import TimeZoneClock, ZonedTime, get_zone, to_datetime, to_epoch_ms

from .conftest import ZONE, local


def test_get_zone_rejects_unknown_identifier():
    with pytest.raises(InvalidTimezone) as exc_info:
        get_zone("Not/AZone")
    assert exc_info.value.zone == "Not/AZone"
    assert isinstance(exc_info.value, ValueError)


def test_clock_rejects_unknown_default_zone():
    with pytest.raises(InvalidTimezone):
        TimeZoneClock("Atlantis/Capital")


def test_naive_datetime_is_rejected():
    with pytest.raises(ValueError):
        to_datetime(datetime(2024, 1, 1, 10, 0))


def test_epoch_ms_round_trip_through_zone():
    instant = local(2024, 1, 1, 7, 3, "UTC")
    assert to_datetime(to_epoch_ms(instant)) == instant


def test_now_in_zone_is_independent_of_host_zone(clock):
    instant = local(2024, 1, 1, 7, 3, "UTC")
    assert clock.now_in_zone("Europe/Moscow", instant) == ZonedTime(2024, 1, 1, 10, 3, 0)
    assert clock.now_in_zone("UTC", to_epoch_ms(instant)).minute_of_day == 7 * 60 + 3


def test_now_in_zone_defaults_to_clock_now(clock, frozen_now):
    zoned = clock.now_in_zone(ZONE)
    assert (zoned.hour, zoned.minute) == (10, 3)
    assert zoned.date() == frozen_now.value.date()


def test_weekday_crosses_date_line(clock):
    # Saturday evening in UTC is already Sunday morning in Tokyo
    instant = local(2024, 1, 6, 22, 30, "UTC")
    assert clock.weekday_in_zone(instant, "UTC") == ("Sat", 7)
    assert clock.weekday_in_zone(instant, "Asia/Tokyo") == ("Sun", 1)


def test_unknown_zone_resolves_to_default(clock):
    assert clock.resolve_zone("Nowhere/Special") == get_zone(ZONE)
    assert clock.resolve_zone(None) == get_zone(ZONE)
    assert clock.resolve_zone("Europe/Moscow") == get_zone("Europe/Moscow")


def test_zone_name_reports_effective_zone(clock):
    assert clock.zone_name("Europe/Moscow") == "Europe/Moscow"
    assert clock.zone_name(None) == ZONE
    assert clock.zone_name("Nowhere/Special") == ZONE


def test_format_in_zone(clock):
    instant = local(2024, 1, 1, 7, 3, "UTC")
    assert clock.format_in_zone(instant, "Europe/Moscow") == "01.01.2024, 10:03:00"


def test_utc_now_comes_from_injected_source(clock, frozen_now):
    assert clock.utc_now() == frozen_now.value
    assert clock.now_ms() == to_epoch_ms(frozen_now.value)
