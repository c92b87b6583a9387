"""Lifecycle status derivation: active, done, missed.

Status is never scheduled. It is recomputed from (item, now) every time an
item is read, so a lapse is noticed even if nothing was running at the due
instant.

Urgency is a finer read-only view of how close an open item is to its due
date: overdue, urgent, warning, normal or complete.
"""

from __future__ import annotations

import copy
from datetime import datetime, timedelta

from cadence.clock import DEFAULT_WEEK_START_DAY
from cadence.models import (
    STATUS_ACTIVE,
    STATUS_DONE,
    STATUS_MISSED,
    ChecklistItem,
    Item,
    TimeItem,
)
from cadence.recurrence import roll_lapsed_occurrence
from cadence.timer import rollover_if_needed

URGENCY_OVERDUE = "overdue"
URGENCY_URGENT = "urgent"
URGENCY_WARNING = "warning"
URGENCY_NORMAL = "normal"
URGENCY_COMPLETE = "complete"

URGENT_HOURS = 12
WARNING_HOURS = 24
# time left vs. work left multipliers
URGENT_WORK_FACTOR = 1.5
WARNING_WORK_FACTOR = 3


def is_on_time(completed_at: datetime | None, due: datetime | None) -> bool:
    """Completion counts as on time up to and including the due instant."""
    if due is None or completed_at is None:
        return True
    return completed_at <= due


def is_lapsed(due: datetime | None, now: datetime) -> bool:
    """A due date lapses strictly after the due instant."""
    return due is not None and now > due


def quota_reached(item: TimeItem) -> bool:
    return item.required_minutes > 0 and item.completed_minutes >= item.required_minutes


def derive_status(item: Item, now: datetime) -> str:
    """Pure status of *item* at *now*.

    Items are expected to be brought current (see bring_current) before
    calling this.
    """
    if isinstance(item, ChecklistItem):
        if item.is_done:
            return STATUS_DONE if is_on_time(item.completed_at, item.due_date) else STATUS_MISSED
        return STATUS_MISSED if is_lapsed(item.due_date, now) else STATUS_ACTIVE

    if isinstance(item, TimeItem):
        if quota_reached(item):
            return STATUS_DONE
        return STATUS_MISSED if is_lapsed(item.due_date, now) else STATUS_ACTIVE

    raise TypeError(f"Unsupported item type: {type(item).__name__}")


def refresh_status(item: Item, now: datetime) -> Item:
    """Copy of *item* with its status re-derived."""
    fresh = copy.deepcopy(item)
    fresh.status = derive_status(fresh, now)
    return fresh


# ── Bringing items current ────────────────────────────────────


def bring_current(
    item: Item,
    now: datetime,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
    tz_name: str | None = None,
) -> str | None:
    """Roll *item* in place into the period that contains *now*.

    Time items reset their quota at a period boundary. Unfinished recurring
    checklist items whose occurrence lapsed move on to the current one; the
    lapsed occurrence's period key is returned.
    """
    if isinstance(item, TimeItem):
        rollover_if_needed(item, now, week_start_day, tz_name)
        return None
    if isinstance(item, ChecklistItem):
        return roll_lapsed_occurrence(item, now, week_start_day)
    return None


def project(
    item: Item,
    now: datetime,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
    tz_name: str | None = None,
) -> Item:
    """Read view of *item* at *now*: a current copy with status re-derived."""
    view = copy.deepcopy(item)
    bring_current(view, now, week_start_day, tz_name)
    view.status = derive_status(view, now)
    return view


# ── Urgency ───────────────────────────────────────────────────


def _hours_until(due: datetime, now: datetime) -> float:
    return (due - now) / timedelta(hours=1)


def urgency(due: datetime | None, now: datetime, is_complete: bool = False) -> str:
    """Urgency from hours left: under 0 overdue, up to 12 urgent, up to 24 warning."""
    if is_complete:
        return URGENCY_COMPLETE
    if due is None:
        return URGENCY_NORMAL
    hours = _hours_until(due, now)
    if hours < 0:
        return URGENCY_OVERDUE
    if hours <= URGENT_HOURS:
        return URGENCY_URGENT
    if hours <= WARNING_HOURS:
        return URGENCY_WARNING
    return URGENCY_NORMAL


def urgency_with_work(
    due: datetime | None,
    now: datetime,
    remaining_minutes: int,
    is_complete: bool = False,
) -> str:
    """Urgency from time left measured against the work still to do.

    urgent when less than 1.5x the remaining work is left before the due
    date, warning under 3x.
    """
    if is_complete or remaining_minutes <= 0:
        return URGENCY_COMPLETE
    if due is None:
        return URGENCY_NORMAL
    hours = _hours_until(due, now)
    if hours < 0:
        return URGENCY_OVERDUE
    work_hours = remaining_minutes / 60
    if hours < work_hours * URGENT_WORK_FACTOR:
        return URGENCY_URGENT
    if hours < work_hours * WARNING_WORK_FACTOR:
        return URGENCY_WARNING
    return URGENCY_NORMAL


def item_urgency(item: Item, now: datetime) -> str:
    """Urgency of a current item: quota items weigh the minutes still owed."""
    if isinstance(item, TimeItem):
        due = item.due_date or item.period_end
        if item.required_minutes <= 0:
            return urgency(due, now)
        remaining = max(0, item.required_minutes - item.completed_minutes)
        return urgency_with_work(due, now, remaining, is_complete=quota_reached(item))
    if isinstance(item, ChecklistItem):
        return urgency(item.due_date, now, is_complete=item.is_done)
    raise TypeError(f"Unsupported item type: {type(item).__name__}")
