"""Insight statistics: deterministic aggregates of how time and effort were spent.

Everything here is computed from (state, period, now) alone. Timer sessions
come from timer_stop log entries; a stop without a recorded duration is
paired with the item's preceding timer_start.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from cadence.categories import CategoryIndex, default_categories
from cadence.clock import (
    DEFAULT_WEEK_START_DAY,
    format_instant,
    local_midnight,
    minutes_between,
    parse_instant,
    period_bounds,
    to_utc,
    zone_or_utc,
)
from cadence.cleanup import truncate_title
from cadence.models import STATUS_ACTIVE, ActionLog, AppState, ChecklistItem, Item, TimeItem
from cadence.status import project

STATS_VERSION = "v1"
MAX_TOP_CATEGORIES = 3
MAX_PROJECT_LIST = 3
MAX_STALE_ITEMS = 5
STALE_DAYS = 14
SHORT_SESSION_MINUTES = 15
DAY_START_HOUR = 6
DAY_END_HOUR = 18
LOW_PROGRESS_RATIO = 0.2
NEARLY_DONE_RATIO = 0.8
UNCATEGORIZED = "Uncategorized"

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

PERIOD_THIS_WEEK = "this_week"
PERIOD_LAST_7_DAYS = "last_7_days"


@dataclass(frozen=True)
class InsightPeriod:
    label: str
    start: datetime
    end: datetime

    def contains(self, instant: datetime | None) -> bool:
        return instant is not None and self.start <= instant < self.end

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "startISO": format_instant(self.start),
            "endISO": format_instant(self.end),
        }


def insight_period(
    label: str,
    now: datetime,
    tz_name: str | None = None,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
    start_date: date | None = None,
    end_date: date | None = None,
) -> InsightPeriod:
    """Resolve a period label to concrete bounds.

    this_week is the week containing *now*; last_7_days runs from local
    midnight seven days back up to *now*. Any other label needs both dates
    and covers them inclusively; without them it falls back to last_7_days.
    """
    now = to_utc(now)
    tz = zone_or_utc(tz_name)
    if label == PERIOD_THIS_WEEK:
        bounds = period_bounds(now, tz_name, week_start_day, "weekly")
        return InsightPeriod(label, bounds.start, bounds.end)
    if label != PERIOD_LAST_7_DAYS and start_date is not None and end_date is not None:
        if end_date < start_date:
            start_date, end_date = end_date, start_date
        custom = f"{start_date:%Y%m%d}_to_{end_date:%Y%m%d}"
        return InsightPeriod(
            custom,
            to_utc(local_midnight(start_date, tz)),
            to_utc(local_midnight(end_date + timedelta(days=1), tz)),
        )
    first_day = now.astimezone(tz).date() - timedelta(days=7)
    return InsightPeriod(PERIOD_LAST_7_DAYS, to_utc(local_midnight(first_day, tz)), now)


# ── Timer sessions ────────────────────────────────────────────


@dataclass
class TimerSession:
    item_id: str
    stopped_at: datetime
    minutes: int
    category_id: str


def _session_minutes(stop: ActionLog, started: dict[str, datetime]) -> int | None:
    payload = stop.payload or {}
    minutes = payload.get("durationMinutes")
    if minutes is not None:
        return int(minutes)
    start = parse_instant(payload.get("startISO")) or started.get(stop.item_id)
    end = parse_instant(payload.get("endISO")) or stop.timestamp
    if start is None or end is None:
        return None
    return minutes_between(start, end)


def extract_sessions(
    actions: list[ActionLog],
    items: list[Item],
    period: InsightPeriod,
    notes: list[str],
) -> list[TimerSession]:
    """Timer sessions that stopped inside *period*, in log order."""
    categories = {i.id: i.category_id for i in items}
    started: dict[str, datetime] = {}
    sessions: list[TimerSession] = []
    for entry in actions:
        if entry.type == "timer_start" and entry.timestamp is not None:
            started[entry.item_id] = entry.timestamp
            continue
        if entry.type != "timer_stop" or not period.contains(entry.timestamp):
            continue
        minutes = _session_minutes(entry, started)
        started.pop(entry.item_id, None)
        if minutes is None or minutes <= 0:
            notes.append(f"Session {entry.id[:8]} missing duration data")
            continue
        sessions.append(TimerSession(
            item_id=entry.item_id,
            stopped_at=entry.timestamp,
            minutes=minutes,
            category_id=categories.get(entry.item_id, ""),
        ))
    return sessions


# ── Sections ──────────────────────────────────────────────────


def _ratio(part: float, whole: float) -> float | None:
    return part / whole if whole > 0 else None


@dataclass
class TimeTrackingStats:
    total_minutes: int = 0
    minutes_by_category: dict[str, int] = field(default_factory=dict)
    day_of_week: dict[str, int] = field(default_factory=lambda: {d: 0 for d in WEEKDAYS})
    day_minutes: int = 0
    night_minutes: int = 0
    total_sessions: int = 0
    short_sessions: int = 0

    @property
    def top_categories(self) -> list[dict[str, Any]]:
        ranked = sorted(self.minutes_by_category.items(), key=lambda kv: -kv[1])
        return [
            {"category": name, "minutes": minutes, "ratio": _ratio(minutes, self.total_minutes) or 0}
            for name, minutes in ranked[:MAX_TOP_CATEGORIES]
        ]

    def to_dict(self) -> dict[str, Any]:
        dow = self.day_of_week
        total = self.total_minutes
        sessions = self.total_sessions
        return {
            "totalTrackedMinutes": total,
            "minutesByCategory": dict(self.minutes_by_category),
            "topCategories": self.top_categories,
            "dayOfWeekHistogram": dict(dow),
            "sessionMetrics": {
                "totalSessions": sessions,
                "shortSessionRatio": self.short_sessions / sessions if sessions else 0,
                "avgSessionMinutes": round(total / sessions) if sessions else 0,
            },
            "rhythmSignals": {
                "weekendRatio": _ratio(dow["Sat"] + dow["Sun"], total),
                "lateWeekRatio": _ratio(dow["Fri"] + dow["Sat"] + dow["Sun"], total),
                "dayTimeRatio": _ratio(self.day_minutes, total),
                "nightTimeRatio": _ratio(self.night_minutes, total),
            },
        }


def build_time_tracking(
    sessions: list[TimerSession],
    index: CategoryIndex,
    tz_name: str | None = None,
) -> TimeTrackingStats:
    tz = zone_or_utc(tz_name)
    stats = TimeTrackingStats()
    for s in sessions:
        parent = index.parent(s.category_id)
        name = parent.name if parent else UNCATEGORIZED
        local = s.stopped_at.astimezone(tz)

        stats.total_minutes += s.minutes
        stats.minutes_by_category[name] = stats.minutes_by_category.get(name, 0) + s.minutes
        stats.day_of_week[WEEKDAYS[local.weekday()]] += s.minutes
        if DAY_START_HOUR <= local.hour < DAY_END_HOUR:
            stats.day_minutes += s.minutes
        else:
            stats.night_minutes += s.minutes
        stats.total_sessions += 1
        if s.minutes < SHORT_SESSION_MINUTES:
            stats.short_sessions += 1
    return stats


@dataclass
class ProjectSummary:
    id: str
    title: str
    progress: float
    category: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "progress": self.progress, "category": self.category}


@dataclass
class ProjectHealthStats:
    live_projects: int = 0
    low_progress: list[ProjectSummary] = field(default_factory=list)
    nearly_done: list[ProjectSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "liveProjectsCount": self.live_projects,
            "under20ProgressProjects": [p.to_dict() for p in self.low_progress],
            "nearlyDoneProjects": [p.to_dict() for p in self.nearly_done],
            # progress always comes from the current quota period
            "projectProgressIsWeekly": True,
        }


def _is_live(item: TimeItem, period: InsightPeriod) -> bool:
    if item.created_at is not None and item.created_at >= period.end:
        return False
    return item.archived_at is None or item.archived_at >= period.start


def build_project_health(
    items: list[Item],
    period: InsightPeriod,
    index: CategoryIndex,
    notes: list[str],
) -> ProjectHealthStats:
    projects = []
    for item in items:
        if not isinstance(item, TimeItem) or not _is_live(item, period):
            continue
        progress = 0.0
        if item.required_minutes > 0:
            progress = min(1.0, max(0.0, item.completed_minutes / item.required_minutes))
        parent = index.parent(item.category_id)
        projects.append(ProjectSummary(
            id=item.id,
            title=truncate_title(item.title),
            progress=progress,
            category=parent.name if parent else UNCATEGORIZED,
        ))

    low = sorted((p for p in projects if p.progress < LOW_PROGRESS_RATIO), key=lambda p: p.progress)
    near = sorted(
        (p for p in projects if NEARLY_DONE_RATIO <= p.progress < 1),
        key=lambda p: -p.progress,
    )
    if period.label == PERIOD_LAST_7_DAYS:
        notes.append("Project progress uses current weekly totals; last_7_days is a rolling window.")
    return ProjectHealthStats(
        live_projects=len(projects),
        low_progress=low[:MAX_PROJECT_LIST],
        nearly_done=near[:MAX_PROJECT_LIST],
    )


@dataclass
class ChecklistTabStats:
    created: int = 0
    completed: int = 0
    stale_titles: list[str] = field(default_factory=list)
    active_unfinished: int = 0

    @property
    def completion_rate(self) -> float | None:
        return _ratio(self.completed, self.created)

    def to_dict(self) -> dict[str, Any]:
        return {
            "createdCount": self.created,
            "completedCount": self.completed,
            "completionRate": self.completion_rate,
            "staleItems": list(self.stale_titles),
            "totalActiveUnfinished": self.active_unfinished,
        }


def build_checklist_tab(items: list[Item], tab: str, period: InsightPeriod, now: datetime) -> ChecklistTabStats:
    checklist = [i for i in items if isinstance(i, ChecklistItem) and i.tab == tab]
    cutoff = now - timedelta(days=STALE_DAYS)
    stale = [
        truncate_title(i.title)
        for i in checklist
        if not i.is_done and not i.is_archived and i.created_at is not None and i.created_at < cutoff
    ]
    return ChecklistTabStats(
        created=sum(1 for i in checklist if period.contains(i.created_at)),
        completed=sum(1 for i in checklist if period.contains(i.completed_at)),
        stale_titles=stale[:MAX_STALE_ITEMS],
        active_unfinished=sum(
            1 for i in checklist if not i.is_done and not i.is_archived and i.status == STATUS_ACTIVE
        ),
    )


# ── Builder ───────────────────────────────────────────────────


@dataclass
class InsightStats:
    generated_at: datetime
    period: InsightPeriod
    time_tracking: TimeTrackingStats
    project_health: ProjectHealthStats
    checklists: dict[str, ChecklistTabStats]
    notes: list[str] = field(default_factory=list)

    @property
    def has_time_sessions(self) -> bool:
        return self.time_tracking.total_sessions > 0

    @property
    def has_checklist_data(self) -> bool:
        return any(t.created or t.completed for t in self.checklists.values())

    @property
    def confidence(self) -> str:
        if self.has_time_sessions and self.has_checklist_data:
            return "high"
        if self.has_time_sessions or self.has_checklist_data:
            return "medium"
        return "low"

    def to_dict(self) -> dict[str, Any]:
        return {
            "statsVersion": STATS_VERSION,
            "generatedAt": format_instant(self.generated_at),
            "period": self.period.to_dict(),
            "dataQuality": {
                "hasTimeSessions": self.has_time_sessions,
                "hasChecklistData": self.has_checklist_data,
                "notes": list(self.notes),
                "confidenceHint": self.confidence,
            },
            "timeTracking": self.time_tracking.to_dict(),
            "projectHealth": self.project_health.to_dict(),
            "checklists": {tab: s.to_dict() for tab, s in self.checklists.items()},
        }


def build_insight_stats(
    state: AppState,
    now: datetime,
    period: InsightPeriod | None = None,
    tz_name: str | None = None,
    week_start_day: int = DEFAULT_WEEK_START_DAY,
) -> InsightStats:
    """Aggregate time tracking, project health and checklist activity.

    Deleted items are left out. Archived items still count for the periods
    they were live in.
    """
    now = to_utc(now)
    if period is None:
        period = insight_period(PERIOD_THIS_WEEK, now, tz_name, week_start_day)
    index = CategoryIndex(state.categories or default_categories())
    items = [project(i, now, week_start_day, tz_name) for i in state.items if not i.is_deleted]
    notes: list[str] = []

    sessions = extract_sessions(state.actions, items, period, notes)
    stats = InsightStats(
        generated_at=now,
        period=period,
        time_tracking=build_time_tracking(sessions, index, tz_name),
        project_health=build_project_health(items, period, index, notes),
        checklists={tab: build_checklist_tab(items, tab, period, now) for tab in ("dayToDay", "hitMyGoal")},
        notes=notes,
    )

    if not stats.has_time_sessions and not stats.has_checklist_data:
        notes.append("No time sessions or checklist activity found in period.")
    elif not stats.has_time_sessions:
        notes.append("No time tracking sessions in period; insights based on checklist data only.")
    elif not stats.has_checklist_data:
        notes.append("No checklist activity in period; insights based on time tracking only.")
    return stats
