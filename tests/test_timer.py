"""Tests for cadence/timer.py: sessions, quota crediting and period rollover."""

import copy
from datetime import timedelta

import pytest

from cadence import timer
from cadence.errors import AlreadyRunning, NotRunning
from cadence.models import RecurrenceSettings, TimeItem
from conftest import utc

WEEK_START = utc(2026, 1, 12)
WEEK_END = utc(2026, 1, 19)


def _item(**kwargs) -> TimeItem:
    kwargs.setdefault("required_minutes", 60)
    kwargs.setdefault("period_start", WEEK_START)
    kwargs.setdefault("period_end", WEEK_END)
    return TimeItem(id="t1", title="Reading", **kwargs)


def test_session_crossing_period_end_credits_only_old_period():
    item = _item()
    timer.start(item, WEEK_END - timedelta(minutes=10), tz_name="UTC")
    result = timer.stop(item, WEEK_END + timedelta(minutes=20), tz_name="UTC")

    assert result.elapsed_minutes == 30
    assert result.credited_minutes == 10
    assert result.discarded_minutes == 20
    assert result.period_key == "20260112"
    assert result.applied_to_quota
    # the item then rolls into the new week with nothing carried over
    assert item.completed_minutes == 0
    assert item.period_start == WEEK_END
    assert item.period_key == "20260119"
    assert not item.is_running


def test_session_inside_period_credits_all_minutes():
    item = _item(completed_minutes=5)
    timer.start(item, utc(2026, 1, 14, 12, 0), tz_name="UTC")
    result = timer.stop(item, utc(2026, 1, 14, 12, 45, 30), tz_name="UTC")
    assert result.credited_minutes == 45
    assert item.completed_minutes == 50
    assert result.to_payload() == {
        "durationMinutes": 45,
        "creditedMinutes": 45,
        "discardedMinutes": 0,
        "sessionPeriodKey": "20260112",
    }


def test_session_spanning_several_periods_credits_first_only():
    item = _item()
    timer.start(item, WEEK_END - timedelta(minutes=30), tz_name="UTC")
    result = timer.stop(item, WEEK_END + timedelta(weeks=2), tz_name="UTC")
    assert result.credited_minutes == 30
    assert item.completed_minutes == 0
    assert item.period_start == utc(2026, 2, 2)


def test_session_for_period_already_rolled_past_is_not_applied():
    item = _item()
    timer.start(item, WEEK_END - timedelta(minutes=10), tz_name="UTC")
    # something rolled the item over while the timer was running
    assert timer.rollover_if_needed(item, WEEK_END + timedelta(hours=1), tz_name="UTC")
    assert item.is_running

    result = timer.stop(item, WEEK_END + timedelta(hours=1, minutes=10), tz_name="UTC")
    assert not result.applied_to_quota
    assert item.completed_minutes == 0
    assert result.to_payload()["creditedMinutes"] == 0
    assert result.to_payload()["discardedMinutes"] == result.elapsed_minutes


# ── Rollover ──────────────────────────────────────────────────


def test_rollover_is_idempotent():
    item = _item(completed_minutes=40)
    now = utc(2026, 1, 20, 8, 0)
    assert timer.rollover_if_needed(item, now, tz_name="UTC")
    once = copy.deepcopy(item)
    assert not timer.rollover_if_needed(item, now, tz_name="UTC")
    assert item == once


def test_rollover_resets_once_per_boundary():
    item = _item(completed_minutes=40)
    timer.rollover_if_needed(item, utc(2026, 1, 20), tz_name="UTC")
    assert item.completed_minutes == 0

    item.completed_minutes = 5
    timer.rollover_if_needed(item, utc(2026, 1, 24), tz_name="UTC")
    assert item.completed_minutes == 5


def test_rollover_inside_period_is_noop():
    item = _item(completed_minutes=40)
    assert not timer.rollover_if_needed(item, utc(2026, 1, 18, 23, 59), tz_name="UTC")
    assert item.completed_minutes == 40


def test_rollover_initializes_missing_period():
    item = TimeItem(id="t1", required_minutes=60)
    assert timer.rollover_if_needed(item, utc(2026, 1, 14), tz_name="UTC")
    assert (item.period_start, item.period_end) == (WEEK_START, WEEK_END)
    assert item.period_key == "20260112"


def test_quota_period_follows_recurrence_frequency():
    item = TimeItem(id="t1", recurrence=RecurrenceSettings(frequency="daily", timezone="UTC"))
    timer.rollover_if_needed(item, utc(2026, 1, 14, 12, 0), tz_name="UTC")
    assert item.period_end - item.period_start == timedelta(days=1)


def test_rollover_uses_week_start_day():
    item = TimeItem(id="t1")
    timer.rollover_if_needed(item, utc(2026, 1, 14), week_start_day=0, tz_name="UTC")
    assert item.period_start == utc(2026, 1, 11)


# ── Start / stop errors ───────────────────────────────────────


def test_start_twice_raises():
    item = _item()
    timer.start(item, utc(2026, 1, 14), tz_name="UTC")
    with pytest.raises(AlreadyRunning, match="already running"):
        timer.start(item, utc(2026, 1, 14, 0, 5), tz_name="UTC")


def test_start_while_other_running_raises():
    item = _item()
    with pytest.raises(AlreadyRunning, match="Stop it first"):
        timer.start(item, utc(2026, 1, 14), running_ids=["t2"], tz_name="UTC")
    assert not item.is_running


def test_start_concurrent_allowed():
    item = _item()
    timer.start(item, utc(2026, 1, 14), running_ids=["t2"], allow_concurrent=True, tz_name="UTC")
    assert item.is_running


def test_stop_without_running_raises():
    with pytest.raises(NotRunning):
        timer.stop(_item(), utc(2026, 1, 14), tz_name="UTC")
