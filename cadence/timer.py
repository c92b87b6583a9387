"""Timer sessions and quota accumulation for time items.

A session only ever credits the quota period it started in. When it runs past
that period's end, the overflow is discarded rather than counted toward the
next period, and the item then rolls over to the period containing the stop
instant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from cadence.clock import DEFAULT_WEEK_START_DAY, minutes_between, period_bounds
from cadence.errors import AlreadyRunning, NotRunning
from cadence.models import TimeItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StopResult:
    elapsed_minutes: int
    credited_minutes: int  # part of the session inside its starting period
    discarded_minutes: int
    period_key: str  # period the session started in
    applied_to_quota: bool  # False when that period had already been rolled past

    def to_payload(self) -> dict[str, object]:
        return {
            "durationMinutes": self.elapsed_minutes,
            "creditedMinutes": self.credited_minutes if self.applied_to_quota else 0,
            "discardedMinutes": self.discarded_minutes if self.applied_to_quota else self.elapsed_minutes,
            "sessionPeriodKey": self.period_key,
        }


def rollover_if_needed(
    item: TimeItem,
    now: datetime,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
    tz_name: str | None = None,
) -> bool:
    """Move *item* to the period containing *now*, resetting its minutes.

    Returns True when a rollover happened. A running timer is left alone.
    Calling it again with the same *now* is a no-op.
    """
    if (
        item.period_start is not None
        and item.period_end is not None
        and item.period_start <= now < item.period_end
    ):
        return False

    bounds = period_bounds(now, tz_name, week_start_day, item.quota_frequency)
    if item.period_start is not None:
        logger.debug(
            "Rolling %s over to period %s (dropping %d min)",
            item.id, bounds.key, item.completed_minutes,
        )
    item.completed_minutes = 0
    item.period_start = bounds.start
    item.period_end = bounds.end
    item.period_key = bounds.key
    return True


def start(
    item: TimeItem,
    now: datetime,
    running_ids: Iterable[str] = (),
    allow_concurrent: bool = False,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
    tz_name: str | None = None,
) -> None:
    """Start the timer on *item*.

    *running_ids* are the items that currently have a timer open. Raises
    AlreadyRunning if this item is one of them, or if any other item is and
    concurrent timers are disabled.
    """
    if item.is_running:
        raise AlreadyRunning(item.id)
    if not allow_concurrent:
        for other in running_ids:
            if other != item.id:
                raise AlreadyRunning(item.id, other)

    rollover_if_needed(item, now, week_start_day, tz_name)
    item.current_session_start = now


def stop(
    item: TimeItem,
    now: datetime,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
    tz_name: str | None = None,
) -> StopResult:
    """Stop the timer on *item* and credit whole minutes to its quota."""
    if not item.is_running:
        raise NotRunning(item.id)

    session_start = item.current_session_start
    elapsed = minutes_between(session_start, now)
    session_period = period_bounds(session_start, tz_name, week_start_day, item.quota_frequency)
    credited = minutes_between(session_start, min(now, session_period.end))

    applied = item.period_start == session_period.start
    if applied:
        item.completed_minutes += credited
    item.current_session_start = None

    rollover_if_needed(item, now, week_start_day, tz_name)
    return StopResult(
        elapsed_minutes=elapsed,
        credited_minutes=credited,
        discarded_minutes=elapsed - credited,
        period_key=session_period.key,
        applied_to_quota=applied,
    )
