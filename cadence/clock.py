"""Time helpers: current instant, ISO parsing, timezone-aware period bounds."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cadence.errors import InvalidTimezone


FREQUENCIES = ("daily", "weekly", "monthly", "annually")
DEFAULT_WEEK_START_DAY = 1  # Monday (0=Sunday ... 6=Saturday)
UTC = ZoneInfo("UTC")


class PeriodBounds(NamedTuple):
    start: datetime
    end: datetime  # exclusive
    key: str


# ── Instants ──────────────────────────────────────────────────


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_instant(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix accepted) into aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    s = str(value).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(s))


def format_instant(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return to_utc(dt).isoformat().replace("+00:00", "Z")


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, never negative."""
    seconds = (end - start).total_seconds()
    return max(0, int(seconds // 60))


# ── Timezones ─────────────────────────────────────────────────


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Look up an IANA zone. Raises InvalidTimezone for unknown names."""
    if not name:
        raise InvalidTimezone(str(name))
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezone(name) from e


def zone_or_utc(name: str | None) -> ZoneInfo:
    try:
        return resolve_timezone(name)
    except InvalidTimezone:
        return UTC


def local_midnight(d: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(d, time(0, 0), tzinfo=tz)


# ── Calendar arithmetic ───────────────────────────────────────


def add_months(d: date, months: int) -> date:
    """Same day-of-month N months later, clamped to the month's last day."""
    total = d.year * 12 + (d.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last))


def shift_date(d: date, frequency: str, n: int) -> date:
    if frequency == "daily":
        return d + timedelta(days=n)
    if frequency == "weekly":
        return d + timedelta(weeks=n)
    if frequency == "monthly":
        return add_months(d, n)
    if frequency == "annually":
        return add_months(d, 12 * n)
    raise ValueError(f"Unknown frequency: {frequency!r}")


def _period_start_date(d: date, week_start_day: int, frequency: str) -> date:
    if frequency == "daily":
        return d
    if frequency == "weekly":
        sunday_based = (d.weekday() + 1) % 7
        return d - timedelta(days=(sunday_based - week_start_day) % 7)
    if frequency == "monthly":
        return d.replace(day=1)
    if frequency == "annually":
        return date(d.year, 1, 1)
    raise ValueError(f"Unknown frequency: {frequency!r}")


# ── Periods ───────────────────────────────────────────────────


def period_bounds(
    instant: datetime,
    tz_name: str | None,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
    frequency: str = "weekly",
) -> PeriodBounds:
    """Return the period containing *instant*.

    Boundaries are local midnights in *tz_name*; the end is the start of the
    next period. The key is the start date as YYYYMMDD. Unknown zones are
    treated as UTC.
    """
    tz = zone_or_utc(tz_name)
    local_day = to_utc(instant).astimezone(tz).date()
    start_day = _period_start_date(local_day, week_start_day % 7, frequency)
    end_day = shift_date(start_day, frequency, 1)
    return PeriodBounds(
        start=to_utc(local_midnight(start_day, tz)),
        end=to_utc(local_midnight(end_day, tz)),
        key=start_day.strftime("%Y%m%d"),
    )


def period_key_for_deadline(
    due: datetime,
    tz_name: str | None,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
    frequency: str = "weekly",
) -> str:
    """Key of the period an occurrence due at *due* belongs to.

    A deadline sitting exactly on a boundary belongs to the period ending there.
    """
    return period_bounds(due - timedelta(microseconds=1), tz_name, week_start_day, frequency).key


def parse_due(value: str | datetime | None, tz_name: str | None) -> datetime | None:
    """Parse a due date. A bare YYYY-MM-DD is due at the end of that local day."""
    if value is None or value == "":
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        day = value
    elif isinstance(value, str) and len(value.strip()) == 10:
        day = date.fromisoformat(value.strip())
    else:
        return parse_instant(value)
    tz = zone_or_utc(tz_name)
    return to_utc(local_midnight(day + timedelta(days=1), tz))


@dataclass(frozen=True)
class FixedClock:
    """Callable clock returning a fixed instant; handy for tests and replays."""

    instant: datetime

    def __call__(self) -> datetime:
        return to_utc(self.instant)
