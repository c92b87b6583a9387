"""Cleanup statistics: compact summaries of items that may be worth archiving.

The stats are a pure projection of (state, now). Acting on them goes back
through LifecycleManager.archive / soft_delete like any other edit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from cadence.clock import DEFAULT_WEEK_START_DAY, format_instant, period_bounds, to_utc
from cadence.models import STATUS_ACTIVE, STATUS_DONE, ActionLog, AppState, ChecklistItem, Item, TimeItem
from cadence.status import project

STATS_VERSION = "v1"
MAX_ITEMS_PER_LIST = 20
STALE_DAYS = 14
LOW_PROGRESS_RATIO = 0.1
DONE_DAYS = 30
INACTIVE_DAYS = 21
MAX_TITLE_LENGTH = 60


def truncate_title(title: str, limit: int = MAX_TITLE_LENGTH) -> str:
    if len(title) <= limit:
        return title
    return title[: limit - 3] + "..."


def _days_between(earlier: datetime, now: datetime) -> int:
    return int((now - earlier) // timedelta(days=1))


@dataclass
class ItemSummary:
    id: str
    title: str
    tab: str
    status: str
    created_at: datetime | None
    days_since_created: int
    days_since_last_activity: int
    activity_count: int  # log entries inside the stats period
    is_done: bool | None = None
    completed_at: datetime | None = None
    completed_minutes: int | None = None
    required_minutes: int | None = None

    @property
    def progress(self) -> float:
        return (self.completed_minutes or 0) / (self.required_minutes or 1)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "tab": self.tab,
            "status": self.status,
            "createdAt": format_instant(self.created_at),
            "daysSinceCreated": self.days_since_created,
            "daysSinceLastActivity": self.days_since_last_activity,
            "activityCount": self.activity_count,
        }
        if self.is_done is not None:
            d["isDone"] = self.is_done
            d["completedAt"] = format_instant(self.completed_at)
        if self.required_minutes is not None:
            d["completedMinutes"] = self.completed_minutes
            d["requiredMinutes"] = self.required_minutes
        return d


@dataclass
class CleanupStats:
    generated_at: datetime
    period_start: datetime
    period_end: datetime
    total_items: int = 0
    active_items: int = 0
    done_items: int = 0
    stale_checklist_items: list[ItemSummary] = field(default_factory=list)
    low_progress_projects: list[ItemSummary] = field(default_factory=list)
    long_done_items: list[ItemSummary] = field(default_factory=list)
    inactive_items: list[ItemSummary] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def candidate_count(self) -> int:
        return (
            len(self.stale_checklist_items)
            + len(self.low_progress_projects)
            + len(self.long_done_items)
            + len(self.inactive_items)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "statsVersion": STATS_VERSION,
            "generatedAt": format_instant(self.generated_at),
            "period": {
                "startISO": format_instant(self.period_start),
                "endISO": format_instant(self.period_end),
            },
            "totalItems": self.total_items,
            "activeItems": self.active_items,
            "doneItems": self.done_items,
            "staleChecklistItems": [s.to_dict() for s in self.stale_checklist_items],
            "lowProgressProjects": [s.to_dict() for s in self.low_progress_projects],
            "longDoneItems": [s.to_dict() for s in self.long_done_items],
            "inactiveItems": [s.to_dict() for s in self.inactive_items],
            "dataQuality": {
                "hasItems": self.total_items > 0,
                "itemCount": self.total_items,
                "notes": list(self.notes),
            },
        }


# ── Summaries ─────────────────────────────────────────────────


def _last_activity(item: Item, actions: list[ActionLog]) -> datetime | None:
    stamps = [a.timestamp for a in actions if a.item_id == item.id and a.timestamp is not None]
    if stamps:
        return max(stamps)
    if isinstance(item, ChecklistItem) and item.completed_at is not None:
        return item.completed_at
    return item.updated_at


def summarize(
    item: Item,
    actions: list[ActionLog],
    now: datetime,
    period_start: datetime,
    period_end: datetime,
) -> ItemSummary:
    created = item.created_at or now
    days_created = _days_between(created, now)
    last = _last_activity(item, actions)
    summary = ItemSummary(
        id=item.id,
        title=truncate_title(item.title),
        tab=item.tab,
        status=item.status,
        created_at=item.created_at,
        days_since_created=days_created,
        days_since_last_activity=_days_between(last, now) if last else days_created,
        activity_count=sum(
            1
            for a in actions
            if a.item_id == item.id and a.timestamp is not None and period_start <= a.timestamp < period_end
        ),
    )
    if isinstance(item, ChecklistItem):
        summary.is_done = item.is_done
        summary.completed_at = item.completed_at
    elif isinstance(item, TimeItem):
        summary.completed_minutes = item.completed_minutes
        summary.required_minutes = item.required_minutes
    return summary


# ── Builder ───────────────────────────────────────────────────


def build_cleanup_stats(
    state: AppState,
    now: datetime,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    tz_name: str | None = None,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
) -> CleanupStats:
    """Collect cleanup candidates from non-archived, non-deleted items.

    The period (default: the week containing *now*) only scopes
    activityCount; the age thresholds are measured from *now*.
    """
    now = to_utc(now)
    if period_start is None or period_end is None:
        bounds = period_bounds(now, tz_name, week_start_day, "weekly")
        period_start = period_start or bounds.start
        period_end = period_end or bounds.end

    items = [
        project(i, now, week_start_day, tz_name)
        for i in state.items
        if not i.is_archived and not i.is_deleted
    ]
    actions = state.actions

    def summaries(selected: list[Item]) -> list[ItemSummary]:
        return [summarize(i, actions, now, period_start, period_end) for i in selected]

    stats = CleanupStats(generated_at=now, period_start=period_start, period_end=period_end)
    stats.total_items = len(items)
    stats.active_items = sum(1 for i in items if i.status == STATUS_ACTIVE)
    stats.done_items = sum(1 for i in items if i.status == STATUS_DONE)

    stale = summaries([
        i for i in items
        if isinstance(i, ChecklistItem)
        and not i.is_done
        and i.status == STATUS_ACTIVE
        and i.created_at is not None
        and _days_between(i.created_at, now) > STALE_DAYS
    ])
    stale.sort(key=lambda s: -s.days_since_created)
    stats.stale_checklist_items = stale[:MAX_ITEMS_PER_LIST]

    low = summaries([
        i for i in items
        if isinstance(i, TimeItem)
        and i.status == STATUS_ACTIVE
        and i.required_minutes > 0
        and i.completed_minutes / i.required_minutes <= LOW_PROGRESS_RATIO
    ])
    low.sort(key=lambda s: s.progress)
    stats.low_progress_projects = low[:MAX_ITEMS_PER_LIST]

    long_done = summaries([
        i for i in items
        if isinstance(i, ChecklistItem)
        and i.status == STATUS_DONE
        and i.completed_at is not None
        and _days_between(i.completed_at, now) > DONE_DAYS
    ])
    long_done.sort(key=lambda s: s.completed_at)
    stats.long_done_items = long_done[:MAX_ITEMS_PER_LIST]

    inactive = [
        s for s in summaries([i for i in items if i.status == STATUS_ACTIVE])
        if s.days_since_last_activity > INACTIVE_DAYS
    ]
    inactive.sort(key=lambda s: -s.days_since_last_activity)
    stats.inactive_items = inactive[:MAX_ITEMS_PER_LIST]

    if not items:
        stats.notes.append("No items found to analyze.")
    elif stats.candidate_count == 0:
        stats.notes.append("No cleanup candidates found.")
    return stats
