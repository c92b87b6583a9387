"""Typed dataclasses for the cadence data model.

All models use from_dict/to_dict for JSON serialization.
camelCase in JSON is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
Instants are aware datetimes normalized to UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from cadence.clock import DEFAULT_WEEK_START_DAY, format_instant, parse_instant
from cadence.errors import InvalidItem


# ── Constants ─────────────────────────────────────────────────

CHECKLIST_TABS = ("dayToDay", "hitMyGoal")
TIME_TAB = "spendMyTime"
TABS = CHECKLIST_TABS + (TIME_TAB,)

STATUS_ACTIVE = "active"
STATUS_DONE = "done"
STATUS_MISSED = "missed"
ITEM_STATUSES = (STATUS_ACTIVE, STATUS_DONE, STATUS_MISSED)

ACTION_TYPES = (
    "create",
    "update",
    "archive",
    "unarchive",
    "delete",
    "complete",
    "timer_start",
    "timer_stop",
)

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_CATEGORY_ID = "sub-default"


def _instant(d: dict[str, Any], key: str) -> datetime | None:
    return parse_instant(d.get(key))


# ── Categories ────────────────────────────────────────────────


@dataclass
class Subcategory:
    id: str
    name: str
    parent_id: str
    icon: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Subcategory:
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            parent_id=str(d.get("parentId", "")),
            icon=str(d.get("icon", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "icon": self.icon, "parentId": self.parent_id}


@dataclass
class Category:
    id: str
    name: str
    color: str = ""
    subcategories: list[Subcategory] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Category:
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            color=str(d.get("color", "")),
            subcategories=[Subcategory.from_dict(s) for s in (d.get("subcategories") or [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "subcategories": [s.to_dict() for s in self.subcategories],
        }


# ── Recurrence ────────────────────────────────────────────────


@dataclass
class RecurrenceSettings:
    frequency: str = "weekly"  # daily, weekly, monthly, annually
    interval: int = 1
    total_occurrences: int | None = None  # None = forever
    completed_occurrences: int = 0
    timezone: str = DEFAULT_TIMEZONE
    start_date: str = ""  # ISO date
    next_due: datetime | None = None

    @property
    def exhausted(self) -> bool:
        return (
            self.total_occurrences is not None
            and self.completed_occurrences >= self.total_occurrences
        )

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RecurrenceSettings:
        total = d.get("totalOccurrences")
        return cls(
            frequency=str(d.get("frequency", "weekly")),
            interval=int(d.get("interval", 1) or 0),
            total_occurrences=int(total) if total is not None else None,
            completed_occurrences=int(d.get("completedOccurrences", 0) or 0),
            timezone=str(d.get("timezone") or DEFAULT_TIMEZONE),
            start_date=str(d.get("startDate", "") or ""),
            next_due=_instant(d, "nextDue"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "frequency": self.frequency,
            "interval": self.interval,
            "totalOccurrences": self.total_occurrences,
            "completedOccurrences": self.completed_occurrences,
            "timezone": self.timezone,
            "startDate": self.start_date,
        }
        if self.next_due is not None:
            d["nextDue"] = format_instant(self.next_due)
        return d


# ── Items ─────────────────────────────────────────────────────


@dataclass
class Item:
    """Fields shared by every tab. Use ChecklistItem or TimeItem, never Item."""

    id: str = ""
    tab: str = ""
    title: str = ""
    base_title: str | None = None  # set when title carries a -YYYYMMDD suffix
    category_id: str = DEFAULT_CATEGORY_ID
    sort_key: int = 0
    status: str = STATUS_ACTIVE
    is_archived: bool = False
    is_deleted: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    archived_at: datetime | None = None
    deleted_at: datetime | None = None
    due_date: datetime | None = None
    recurrence: RecurrenceSettings | None = None
    period_key: str | None = None

    # Fields update_fields() may touch, in addition to the subclass ones.
    EDITABLE: ClassVar[tuple[str, ...]] = (
        "title",
        "base_title",
        "category_id",
        "sort_key",
        "due_date",
        "recurrence",
    )

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @staticmethod
    def _base_kwargs(d: dict[str, Any]) -> dict[str, Any]:
        rec = d.get("recurrence")
        return {
            "id": str(d.get("id", "")),
            "tab": str(d.get("tab", "")),
            "title": str(d.get("title", "")),
            "base_title": d.get("baseTitle"),
            "category_id": str(d.get("categoryId") or DEFAULT_CATEGORY_ID),
            "sort_key": int(d.get("sortKey", 0) or 0),
            "status": str(d.get("status", STATUS_ACTIVE)),
            "is_archived": bool(d.get("isArchived", False)),
            "is_deleted": bool(d.get("isDeleted", False)),
            "created_at": _instant(d, "createdAt"),
            "updated_at": _instant(d, "updatedAt"),
            "archived_at": _instant(d, "archivedAt"),
            "deleted_at": _instant(d, "deletedAt"),
            "due_date": _instant(d, "dueDate"),
            "recurrence": RecurrenceSettings.from_dict(rec) if isinstance(rec, dict) else None,
            "period_key": d.get("periodKey"),
        }

    def _base_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "tab": self.tab,
            "title": self.title,
            "categoryId": self.category_id,
            "sortKey": self.sort_key,
            "status": self.status,
            "isArchived": self.is_archived,
            "isDeleted": self.is_deleted,
            "createdAt": format_instant(self.created_at),
            "updatedAt": format_instant(self.updated_at),
            "archivedAt": format_instant(self.archived_at),
            "deletedAt": format_instant(self.deleted_at),
            "dueDate": format_instant(self.due_date),
        }
        if self.base_title is not None:
            d["baseTitle"] = self.base_title
        if self.recurrence is not None:
            d["recurrence"] = self.recurrence.to_dict()
        if self.period_key is not None:
            d["periodKey"] = self.period_key
        return d


@dataclass
class ChecklistItem(Item):
    tab: str = "dayToDay"
    is_done: bool = False
    completed_at: datetime | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ChecklistItem:
        return cls(
            **cls._base_kwargs(d),
            is_done=bool(d.get("isDone", False)),
            completed_at=_instant(d, "completedAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        d = self._base_dict()
        d["isDone"] = self.is_done
        d["completedAt"] = format_instant(self.completed_at)
        return d


@dataclass
class TimeItem(Item):
    tab: str = TIME_TAB
    required_minutes: int = 0
    completed_minutes: int = 0
    current_session_start: datetime | None = None
    period_start: datetime | None = None
    period_end: datetime | None = None

    EDITABLE: ClassVar[tuple[str, ...]] = Item.EDITABLE + ("required_minutes",)

    @property
    def is_running(self) -> bool:
        return self.current_session_start is not None

    @property
    def quota_frequency(self) -> str:
        """Length of the quota period: the recurrence frequency, else weekly."""
        return self.recurrence.frequency if self.recurrence else "weekly"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TimeItem:
        return cls(
            **cls._base_kwargs(d),
            required_minutes=int(d.get("requiredMinutes", 0) or 0),
            completed_minutes=int(d.get("completedMinutes", 0) or 0),
            current_session_start=_instant(d, "currentSessionStart"),
            period_start=_instant(d, "periodStart"),
            period_end=_instant(d, "periodEnd"),
        )

    def to_dict(self) -> dict[str, Any]:
        d = self._base_dict()
        d["requiredMinutes"] = self.required_minutes
        d["completedMinutes"] = self.completed_minutes
        d["currentSessionStart"] = format_instant(self.current_session_start)
        d["periodStart"] = format_instant(self.period_start)
        d["periodEnd"] = format_instant(self.period_end)
        return d


ITEM_TYPES: dict[str, type[Item]] = {
    "dayToDay": ChecklistItem,
    "hitMyGoal": ChecklistItem,
    "spendMyTime": TimeItem,
}


def item_class_for(tab: str) -> type[Item]:
    try:
        return ITEM_TYPES[tab]
    except KeyError:
        raise InvalidItem(f"Invalid tab: {tab!r}") from None


def item_from_dict(d: dict[str, Any]) -> Item:
    """Build the right Item variant for d['tab']."""
    cls = item_class_for(str(d.get("tab", "")))
    return cls.from_dict(d)  # type: ignore[attr-defined]


# ── Action log ────────────────────────────────────────────────


@dataclass(frozen=True)
class ActionLog:
    id: str
    item_id: str
    tab: str
    type: str
    timestamp: datetime
    payload: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ActionLog:
        payload = d.get("payload")
        return cls(
            id=str(d.get("id", "")),
            item_id=str(d.get("itemId", "")),
            tab=str(d.get("tab", "")),
            type=str(d.get("type", "")),
            timestamp=parse_instant(d.get("timestamp")),
            payload=payload if isinstance(payload, dict) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "itemId": self.item_id,
            "tab": self.tab,
            "type": self.type,
            "timestamp": format_instant(self.timestamp),
        }
        if self.payload is not None:
            d["payload"] = self.payload
        return d


# ── App state ─────────────────────────────────────────────────


@dataclass
class AppState:
    items: list[Item] = field(default_factory=list)
    actions: list[ActionLog] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AppState:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            items=[item_from_dict(i) for i in (d.get("items") or [])],
            actions=[ActionLog.from_dict(a) for a in (d.get("actions") or [])],
            categories=[Category.from_dict(c) for c in (d.get("categories") or [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [i.to_dict() for i in self.items],
            "actions": [a.to_dict() for a in self.actions],
            "categories": [c.to_dict() for c in self.categories],
        }


# ── Settings ──────────────────────────────────────────────────


@dataclass
class Settings:
    timezone: str = DEFAULT_TIMEZONE
    week_start_day: int = DEFAULT_WEEK_START_DAY  # 0=Sunday ... 6=Saturday
    allow_concurrent_timers: bool = False

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            return cls()
        try:
            week_start = int(d.get("week_start_day", DEFAULT_WEEK_START_DAY))
        except (TypeError, ValueError):
            week_start = DEFAULT_WEEK_START_DAY
        if not 0 <= week_start <= 6:
            week_start = DEFAULT_WEEK_START_DAY
        return cls(
            timezone=str(d.get("timezone") or DEFAULT_TIMEZONE),
            week_start_day=week_start,
            allow_concurrent_timers=bool(d.get("allow_concurrent_timers", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timezone": self.timezone,
            "week_start_day": self.week_start_day,
            "allow_concurrent_timers": self.allow_concurrent_timers,
        }
