"""Recurrence scheduler for cadence.

Computes the next due instant of a recurring item, counts completed
occurrences against an optional cap, and formats the ``Title-YYYYMMDD``
period suffix used by recurring titles.

Due instants are shifted on the local wall clock of the recurrence's
timezone, so a task due at 09:00 stays at 09:00 across DST changes.
Monthly and annual steps keep the day of month, clamped to the month end.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any

from cadence.clock import (
    DEFAULT_WEEK_START_DAY,
    FREQUENCIES,
    period_bounds,
    period_key_for_deadline,
    resolve_timezone,
    shift_date,
    to_utc,
    zone_or_utc,
)
from cadence.errors import InvalidRecurrence, InvalidTimezone
from cadence.models import ChecklistItem, RecurrenceSettings

logger = logging.getLogger(__name__)

_TITLE_PERIOD_RE = re.compile(r"^(.+)-(\d{8})$")
_MAX_CATCH_UP_STEPS = 100_000


@dataclass(frozen=True)
class Advance:
    """Result of advancing a recurrence by one completed occurrence."""

    next_due: datetime | None
    next_period_key: str | None
    exhausted: bool
    recurrence: RecurrenceSettings


# ── Validation ────────────────────────────────────────────────


def normalize_recurrence(
    rec: RecurrenceSettings | dict[str, Any],
    default_timezone: str | None = None,
    start_date: date | None = None,
) -> RecurrenceSettings:
    """Return a corrected copy of *rec*, or raise InvalidRecurrence.

    interval 0 becomes 1 and an unknown timezone becomes UTC. The completed
    counter never goes down: a cap below it is raised to meet it, which
    exhausts the series. Unknown frequencies, negative intervals and
    non-positive caps cannot be corrected.
    """
    if isinstance(rec, dict):
        if default_timezone and not rec.get("timezone"):
            rec = {**rec, "timezone": default_timezone}
        try:
            rec = RecurrenceSettings.from_dict(rec)
        except (TypeError, ValueError) as e:
            raise InvalidRecurrence(f"Malformed recurrence: {e}") from e

    frequency = str(rec.frequency).strip().lower()
    if frequency not in FREQUENCIES:
        raise InvalidRecurrence(f"Invalid frequency: {rec.frequency!r}")

    interval = rec.interval
    if interval < 0:
        raise InvalidRecurrence(f"Invalid interval: {interval}")
    if interval == 0:
        logger.debug("Recurrence interval 0 floored to 1")
        interval = 1

    total = rec.total_occurrences
    if total is not None and total < 1:
        raise InvalidRecurrence(f"totalOccurrences must be positive, got {total}")

    completed = max(0, rec.completed_occurrences)
    if total is not None and total < completed:
        logger.debug("totalOccurrences %d raised to completed count %d", total, completed)
        total = completed

    tz_name = rec.timezone or default_timezone or "UTC"
    try:
        resolve_timezone(tz_name)
    except InvalidTimezone:
        logger.warning("Unknown recurrence timezone %r, using UTC", tz_name)
        tz_name = "UTC"

    start = rec.start_date
    if not start and start_date is not None:
        start = start_date.isoformat()

    return replace(
        rec,
        frequency=frequency,
        interval=interval,
        total_occurrences=total,
        completed_occurrences=completed,
        timezone=tz_name,
        start_date=start,
    )


# ── Due-date arithmetic ───────────────────────────────────────


def shift_instant(instant: datetime, frequency: str, n: int, tz_name: str | None) -> datetime:
    """Move *instant* by n periods on the local wall clock of *tz_name*."""
    tz = zone_or_utc(tz_name)
    local = to_utc(instant).astimezone(tz)
    day = shift_date(local.date(), frequency, n)
    return to_utc(local.replace(year=day.year, month=day.month, day=day.day))


def initial_due(
    frequency: str,
    now: datetime,
    tz_name: str | None,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
) -> datetime:
    """Due instant for a new recurring item: the end of the current period."""
    return period_bounds(now, tz_name, week_start_day, frequency).end


def catch_up(rec: RecurrenceSettings, due: datetime, now: datetime) -> datetime:
    """First due-aligned instant strictly after *now*.

    Returns *due* unchanged when it has not lapsed. Steps are always taken
    from *due*, so a month-end due date keeps clamping the same way. Does
    not count an occurrence.
    """
    if due > now:
        return due
    interval = max(1, rec.interval)
    for k in range(1, _MAX_CATCH_UP_STEPS):
        candidate = shift_instant(due, rec.frequency, k * interval, rec.timezone)
        if candidate > now:
            return candidate
    raise InvalidRecurrence(f"Due date {due.isoformat()} is too far behind {now.isoformat()}")


def advance(
    recurrence: RecurrenceSettings,
    from_instant: datetime,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
) -> Advance:
    """Count one completed occurrence and compute the next one.

    Callers must invoke this once per completion event; the scheduler does not
    deduplicate.
    """
    rec = normalize_recurrence(recurrence)
    if rec.exhausted:
        return Advance(None, None, True, replace(rec, next_due=None))

    completed = rec.completed_occurrences + 1
    if rec.total_occurrences is not None and completed >= rec.total_occurrences:
        logger.debug("Recurrence series exhausted after %d occurrences", completed)
        return Advance(None, None, True, replace(rec, completed_occurrences=completed, next_due=None))

    next_due = shift_instant(from_instant, rec.frequency, rec.interval, rec.timezone)
    key = period_key_for_deadline(next_due, rec.timezone, week_start_day, rec.frequency)
    return Advance(
        next_due=next_due,
        next_period_key=key,
        exhausted=False,
        recurrence=replace(rec, completed_occurrences=completed, next_due=next_due),
    )


# ── Occurrence rollover ───────────────────────────────────────


def retitle_occurrence(item: ChecklistItem, week_start_day: int = DEFAULT_WEEK_START_DAY) -> None:
    """Keep a recurring item's title suffix, period key and nextDue in sync."""
    rec = item.recurrence
    if rec is None or item.due_date is None:
        return
    base = item.base_title or parse_title_period(item.title)[0]
    key = period_key_for_deadline(item.due_date, rec.timezone, week_start_day, rec.frequency)
    item.base_title = base
    item.period_key = key
    item.title = format_title_with_period(base, key)
    item.recurrence = replace(rec, next_due=item.due_date)


def roll_lapsed_occurrence(
    item: ChecklistItem,
    now: datetime,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
) -> str | None:
    """Move an unfinished recurring item whose due date has passed to the
    occurrence that is current at *now*.

    Returns the period key of the occurrence that lapsed, or None if the item
    did not move. completedOccurrences is left untouched.
    """
    rec = item.recurrence
    if rec is None or rec.exhausted or item.is_done or item.due_date is None:
        return None
    if now <= item.due_date:
        return None
    lapsed_key = item.period_key
    item.due_date = catch_up(rec, item.due_date, now)
    retitle_occurrence(item, week_start_day)
    logger.debug("Occurrence %s of %s lapsed, now %s", lapsed_key, item.id, item.period_key)
    return lapsed_key


# ── Period titles ─────────────────────────────────────────────


def format_title_with_period(base_title: str, period_key: str) -> str:
    """'Sleep' + '20260112' -> 'Sleep-20260112'."""
    return f"{base_title}-{period_key}"


def parse_title_period(title: str) -> tuple[str, str | None]:
    """Split a title into (base_title, period_key or None)."""
    m = _TITLE_PERIOD_RE.match(title)
    if m:
        return m.group(1), m.group(2)
    return title, None
