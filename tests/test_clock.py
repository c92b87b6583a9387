"""Tests for cadence/clock.py: instants, timezones and period bounds."""

from datetime import date, datetime, timedelta

import pytest

from cadence.clock import (
    FixedClock,
    add_months,
    format_instant,
    minutes_between,
    parse_due,
    parse_instant,
    period_bounds,
    period_key_for_deadline,
    resolve_timezone,
    shift_date,
    zone_or_utc,
)
from cadence.errors import InvalidTimezone
from conftest import utc


def test_parse_instant_z_suffix():
    assert parse_instant("2026-01-14T12:00:00Z") == utc(2026, 1, 14, 12, 0)


def test_parse_instant_offset_normalized_to_utc():
    dt = parse_instant("2026-01-14T07:00:00-05:00")
    assert dt == utc(2026, 1, 14, 12, 0)
    assert dt.utcoffset() == timedelta(0)


def test_parse_instant_naive_taken_as_utc():
    assert parse_instant("2026-01-14T12:00:00") == utc(2026, 1, 14, 12, 0)


def test_parse_instant_empty():
    assert parse_instant(None) is None
    assert parse_instant("") is None


def test_format_instant():
    assert format_instant(utc(2026, 1, 14, 12, 0)) == "2026-01-14T12:00:00Z"
    assert format_instant(None) is None


def test_minutes_between_floors_and_never_negative():
    start = utc(2026, 1, 14, 12, 0)
    assert minutes_between(start, start + timedelta(minutes=10, seconds=59)) == 10
    assert minutes_between(start, start - timedelta(minutes=5)) == 0


def test_resolve_timezone_unknown():
    with pytest.raises(InvalidTimezone):
        resolve_timezone("Mars/Olympus_Mons")
    with pytest.raises(InvalidTimezone):
        resolve_timezone("")


def test_zone_or_utc_falls_back():
    assert str(zone_or_utc("Not/AZone")) == "UTC"
    assert str(zone_or_utc("America/New_York")) == "America/New_York"


def test_add_months_clamps_to_month_end():
    assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2026, 11, 15), 3) == date(2027, 2, 15)


def test_shift_date_unknown_frequency():
    with pytest.raises(ValueError):
        shift_date(date(2026, 1, 1), "hourly", 1)


# ── Period bounds ─────────────────────────────────────────────


def test_weekly_bounds_monday_start():
    bounds = period_bounds(utc(2026, 1, 14, 12, 0), "UTC", 1, "weekly")
    assert bounds.start == utc(2026, 1, 12)
    assert bounds.end == utc(2026, 1, 19)
    assert bounds.key == "20260112"


def test_weekly_bounds_sunday_start():
    bounds = period_bounds(utc(2026, 1, 14, 12, 0), "UTC", 0, "weekly")
    assert bounds.start == utc(2026, 1, 11)
    assert bounds.key == "20260111"


def test_weekly_bounds_use_local_calendar():
    # 03:00 UTC Monday is still Sunday evening in New York
    bounds = period_bounds(utc(2026, 1, 12, 3, 0), "America/New_York", 1, "weekly")
    assert bounds.key == "20260105"
    assert bounds.start == utc(2026, 1, 5, 5, 0)
    assert bounds.end == utc(2026, 1, 12, 5, 0)


def test_daily_monthly_annual_bounds():
    instant = utc(2026, 1, 31, 12, 0)
    assert period_bounds(instant, "UTC", 1, "daily").key == "20260131"
    monthly = period_bounds(instant, "UTC", 1, "monthly")
    assert (monthly.start, monthly.end, monthly.key) == (utc(2026, 1, 1), utc(2026, 2, 1), "20260101")
    annual = period_bounds(instant, "UTC", 1, "annually")
    assert (annual.start, annual.end) == (utc(2026, 1, 1), utc(2027, 1, 1))


def test_daily_bounds_across_dst_start():
    bounds = period_bounds(utc(2026, 3, 8, 12, 0), "America/New_York", 1, "daily")
    assert bounds.start == utc(2026, 3, 8, 5, 0)
    assert bounds.end == utc(2026, 3, 9, 4, 0)
    assert bounds.end - bounds.start == timedelta(hours=23)


def test_period_key_for_deadline_on_boundary():
    # due exactly at the end of the week belongs to that week
    assert period_key_for_deadline(utc(2026, 1, 19), "UTC", 1, "weekly") == "20260112"
    assert period_key_for_deadline(utc(2026, 1, 19, 0, 1), "UTC", 1, "weekly") == "20260119"


# ── Due dates ─────────────────────────────────────────────────


def test_parse_due_bare_date_is_end_of_local_day():
    assert parse_due("2026-01-12", "America/New_York") == utc(2026, 1, 13, 5, 0)
    assert parse_due(date(2026, 1, 12), "UTC") == utc(2026, 1, 13)


def test_parse_due_instant_kept():
    assert parse_due("2026-01-12T10:00:00Z", "America/New_York") == utc(2026, 1, 12, 10, 0)
    assert parse_due(None, "UTC") is None


def test_parse_due_invalid():
    with pytest.raises(ValueError):
        parse_due("not-a-date", "UTC")


def test_fixed_clock():
    clock = FixedClock(datetime(2026, 1, 14, 12, 0))
    assert clock() == utc(2026, 1, 14, 12, 0)
    assert clock().tzinfo is not None
    assert clock() == clock()
