"""Lifecycle manager: the single writer of AppState.

Each mutation:
1. Finds the item and works on a deep copy of it
2. Brings it current (quota period, lapsed recurring occurrence)
3. Applies the operation (status, recurrence, timer)
4. Re-derives status and stamps updated_at
5. Commits the copy and appends exactly one action log entry
6. Persists the snapshot (PersistenceFailure propagates; memory stays committed)

If any step before the commit raises, the state is untouched.
Operations whose effect already holds (archiving an archived item, ...) are
no-ops and log nothing.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Callable

from cadence import timer
from cadence.actions import ActionLogger, new_id
from cadence.categories import CategoryIndex, default_categories
from cadence.clock import (
    format_instant,
    parse_due,
    resolve_timezone,
    to_utc,
    utc_now,
    zone_or_utc,
)
from cadence.errors import InvalidItem, InvalidRecurrence, InvalidTimezone, ItemNotFound
from cadence.models import (
    DEFAULT_CATEGORY_ID,
    STATUS_ACTIVE,
    STATUS_DONE,
    STATUS_MISSED,
    AppState,
    ChecklistItem,
    Item,
    RecurrenceSettings,
    Settings,
    TimeItem,
    item_class_for,
)
from cadence.recurrence import (
    advance,
    initial_due,
    normalize_recurrence,
    parse_title_period,
    retitle_occurrence,
)
from cadence.snapshot import deserialize, merge_states, serialize
from cadence.status import bring_current, derive_status, is_on_time, project, quota_reached
from cadence.storage import SnapshotStore

logger = logging.getLogger(__name__)

_STATUS_ORDER = {STATUS_ACTIVE: 0, STATUS_DONE: 1, STATUS_MISSED: 2}


def _payload_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_instant(value)
    if isinstance(value, RecurrenceSettings):
        return value.to_dict()
    return value


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


class LifecycleManager:
    def __init__(
        self,
        state: AppState | None = None,
        settings: Settings | None = None,
        store: SnapshotStore | None = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_id,
    ):
        self.settings = settings or Settings()
        try:
            resolve_timezone(self.settings.timezone)
            self.timezone = self.settings.timezone
        except InvalidTimezone:
            logger.warning("Invalid timezone %r, falling back to UTC", self.settings.timezone)
            self.timezone = "UTC"
        self.store = store
        self._clock = clock
        self._id_factory = id_factory
        self._install(state or AppState())

    @classmethod
    def load(
        cls,
        store: SnapshotStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> LifecycleManager:
        """Build a manager from whatever *store* holds (empty state if nothing)."""
        snapshot = store.load()
        state = deserialize(snapshot) if snapshot else AppState()
        return cls(state=state, settings=settings, store=store, clock=clock)

    def _install(self, state: AppState) -> None:
        if not state.categories:
            state.categories = default_categories()
        self.state = state
        self.categories = CategoryIndex(state.categories)
        self.log = ActionLogger(state.actions, self._id_factory)

    # ── Helpers ───────────────────────────────────────────────

    @property
    def week_start_day(self) -> int:
        return self.settings.week_start_day

    def now(self) -> datetime:
        return to_utc(self._clock())

    def _find(self, item_id: str, include_deleted: bool = False) -> tuple[int, Item]:
        for i, item in enumerate(self.state.items):
            if item.id == item_id and (include_deleted or not item.is_deleted):
                return i, item
        raise ItemNotFound(item_id)

    def _parse_due(self, value: Any) -> datetime | None:
        try:
            return parse_due(value, self.timezone)
        except (TypeError, ValueError) as e:
            raise InvalidItem(f"Invalid due date {value!r}: {e}") from e

    def _check_category(self, category_id: str) -> None:
        if not self.categories.is_subcategory(category_id):
            raise InvalidItem(f"Category must be a subcategory id: {category_id!r}")

    def _working_copy(self, item: Item, now: datetime) -> Item:
        work = copy.deepcopy(item)
        bring_current(work, now, self.week_start_day, self.timezone)
        return work

    def _retitle(self, item: ChecklistItem) -> None:
        retitle_occurrence(item, self.week_start_day)

    def _commit(
        self,
        index: int | None,
        item: Item,
        action_type: str,
        now: datetime,
        payload: dict[str, Any] | None = None,
    ) -> Item:
        item.status = derive_status(item, now)
        item.updated_at = now
        entry = self.log.build(item, action_type, now, payload)

        if index is None:
            self.state.items.append(item)
        else:
            self.state.items[index] = item
        self.log.append(entry)
        logger.info("%s %s [%s] -> %s", action_type, item.id, item.tab, item.status)

        self._persist()
        return copy.deepcopy(item)

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(serialize(self.state))

    # ── Mutations ─────────────────────────────────────────────

    def create_item(
        self,
        tab: str,
        title: str,
        category_id: str | None = None,
        due_date: Any = None,
        recurrence: RecurrenceSettings | dict[str, Any] | None = None,
        required_minutes: int | None = None,
        sort_key: int | None = None,
    ) -> Item:
        now = self.now()
        cls = item_class_for(tab)

        title = (title or "").strip()
        if not title:
            raise InvalidItem("Missing required field: title")
        category_id = category_id or DEFAULT_CATEGORY_ID
        self._check_category(category_id)
        due = self._parse_due(due_date)
        rec = None
        if recurrence is not None:
            local_today = now.astimezone(zone_or_utc(self.timezone)).date()
            rec = normalize_recurrence(recurrence, self.timezone, start_date=local_today)

        common: dict[str, Any] = {
            "id": self._id_factory(),
            "tab": tab,
            "title": title,
            "category_id": category_id,
            "sort_key": sort_key if sort_key is not None else int(now.timestamp() * 1000),
            "created_at": now,
            "updated_at": now,
            "due_date": due,
            "recurrence": rec,
        }

        if cls is TimeItem:
            try:
                required = int(required_minutes or 0)
            except (TypeError, ValueError) as e:
                raise InvalidItem(f"requiredMinutes must be an integer: {required_minutes!r}") from e
            if required < 0:
                raise InvalidItem("requiredMinutes must be >= 0")
            item: Item = TimeItem(**common, required_minutes=required)
            timer.rollover_if_needed(item, now, self.week_start_day, self.timezone)
        else:
            item = ChecklistItem(**common)
            if rec is not None:
                if item.due_date is None:
                    item.due_date = initial_due(rec.frequency, now, rec.timezone, self.week_start_day)
                item.base_title = parse_title_period(title)[0]
                self._retitle(item)

        payload = {
            "newValues": {
                "title": item.title,
                "categoryId": item.category_id,
                "dueDate": format_instant(item.due_date),
                "recurring": rec is not None,
            }
        }
        return self._commit(None, item, "create", now, payload)

    def toggle_complete(self, item_id: str) -> Item:
        """Complete or re-open a checklist item.

        Completing a recurring item counts one occurrence and rolls it into the
        next active occurrence, unless the series is exhausted, in which case
        it stays done. Occurrences that lapsed unfinished are skipped first
        and never counted.
        """
        now = self.now()
        index, stored = self._find(item_id)
        if not isinstance(stored, ChecklistItem):
            raise InvalidItem("Time items complete by reaching their quota, not by toggling")
        item = copy.deepcopy(stored)
        lapsed_key = bring_current(item, now, self.week_start_day, self.timezone)

        if item.is_done:
            payload: dict[str, Any] = {
                "isDone": False,
                "previousValues": {"isDone": True, "completedAt": format_instant(item.completed_at)},
            }
            item.is_done = False
            item.completed_at = None
            return self._commit(index, item, "complete", now, payload)

        item.is_done = True
        item.completed_at = now
        payload = {"isDone": True, "onTime": is_on_time(now, item.due_date)}

        if item.recurrence is not None:
            result = advance(item.recurrence, item.due_date or now, self.week_start_day)
            item.recurrence = result.recurrence
            payload.update({
                "periodKey": item.period_key,
                "completedOccurrences": result.recurrence.completed_occurrences,
                "exhausted": result.exhausted,
            })
            if lapsed_key:
                payload["lapsedPeriodKey"] = lapsed_key
            if not result.exhausted:
                item.is_done = False
                item.due_date = result.next_due
                self._retitle(item)
                payload["nextDue"] = format_instant(result.next_due)
                payload["nextPeriodKey"] = item.period_key

        return self._commit(index, item, "complete", now, payload)

    def archive(self, item_id: str) -> Item:
        now = self.now()
        index, stored = self._find(item_id)
        if stored.is_archived:
            return copy.deepcopy(stored)
        item = self._working_copy(stored, now)
        item.is_archived = True
        item.archived_at = now
        return self._commit(index, item, "archive", now)

    def unarchive(self, item_id: str) -> Item:
        now = self.now()
        index, stored = self._find(item_id)
        if not stored.is_archived:
            return copy.deepcopy(stored)
        item = self._working_copy(stored, now)
        payload = {"previousValues": {"archivedAt": format_instant(item.archived_at)}}
        item.is_archived = False
        item.archived_at = None
        return self._commit(index, item, "unarchive", now, payload)

    def soft_delete(self, item_id: str) -> Item:
        """Hide an item for good. The record and its history are kept."""
        now = self.now()
        index, stored = self._find(item_id, include_deleted=True)
        if stored.is_deleted:
            return copy.deepcopy(stored)
        item = self._working_copy(stored, now)
        payload: dict[str, Any] | None = None
        if isinstance(item, TimeItem) and item.is_running:
            payload = {"discardedSessionStart": format_instant(item.current_session_start)}
            item.current_session_start = None
        item.is_deleted = True
        item.deleted_at = now
        return self._commit(index, item, "delete", now, payload)

    def start_timer(self, item_id: str) -> Item:
        now = self.now()
        index, stored = self._find(item_id)
        if not isinstance(stored, TimeItem):
            raise InvalidItem(f"Not a time item: {item_id}")
        item = self._working_copy(stored, now)
        running = [i.id for i in self.state.items if isinstance(i, TimeItem) and i.is_running and not i.is_deleted]
        timer.start(
            item,
            now,
            running_ids=running,
            allow_concurrent=self.settings.allow_concurrent_timers,
            week_start_day=self.week_start_day,
            tz_name=self.timezone,
        )
        return self._commit(index, item, "timer_start", now, {"periodKey": item.period_key})

    def stop_timer(self, item_id: str) -> Item:
        now = self.now()
        index, stored = self._find(item_id)
        if not isinstance(stored, TimeItem):
            raise InvalidItem(f"Not a time item: {item_id}")
        # rollover runs inside stop(), after the session is credited
        item = copy.deepcopy(stored)
        result = timer.stop(item, now, self.week_start_day, self.timezone)
        payload = result.to_payload()
        payload["completedMinutes"] = item.completed_minutes
        payload["quotaReached"] = quota_reached(item)
        return self._commit(index, item, "timer_stop", now, payload)

    def update_fields(self, item_id: str, changes: dict[str, Any]) -> Item:
        """Edit whitelisted fields. tab, id, status and timestamps are not editable."""
        now = self.now()
        index, stored = self._find(item_id)
        editable = type(stored).EDITABLE
        rejected = sorted(set(changes) - set(editable))
        if rejected:
            raise InvalidItem(f"Field(s) not editable: {', '.join(rejected)}")

        item = self._working_copy(stored, now)
        previous: dict[str, Any] = {}
        new: dict[str, Any] = {}
        for name, value in changes.items():
            value = self._coerce_field(item, name, value)
            current = getattr(item, name)
            if current != value:
                previous[_camel(name)] = _payload_value(current)
                new[_camel(name)] = _payload_value(value)
                setattr(item, name, value)

        if not new:
            return copy.deepcopy(stored)

        if isinstance(item, ChecklistItem):
            if item.recurrence is not None:
                if "title" in changes:
                    item.base_title = parse_title_period(item.title)[0]
                if item.due_date is None:
                    rec = item.recurrence
                    item.due_date = initial_due(rec.frequency, now, rec.timezone, self.week_start_day)
                self._retitle(item)
            elif stored.recurrence is not None:
                item.title = item.base_title or item.title
                item.base_title = None
                item.period_key = None

        payload = {"previousValues": previous, "newValues": new}
        return self._commit(index, item, "update", now, payload)

    def _coerce_field(self, item: Item, name: str, value: Any) -> Any:
        if name == "title":
            value = str(value or "").strip()
            if not value:
                raise InvalidItem("Title cannot be empty")
            return value
        if name == "category_id":
            self._check_category(str(value))
            return str(value)
        if name == "due_date":
            return self._parse_due(value)
        if name == "recurrence":
            if value is None:
                return None
            if isinstance(value, RecurrenceSettings):
                value = value.to_dict()
            if isinstance(value, dict) and item.recurrence:
                value = {
                    "startDate": item.recurrence.start_date,
                    "timezone": item.recurrence.timezone,
                    "nextDue": format_instant(item.recurrence.next_due),
                    **value,
                    # the counter only moves through completions
                    "completedOccurrences": item.recurrence.completed_occurrences,
                }
            rec = normalize_recurrence(value, self.timezone)
            done = item.recurrence.completed_occurrences if item.recurrence else 0
            if rec.total_occurrences is not None and rec.total_occurrences < done:
                raise InvalidRecurrence(
                    f"totalOccurrences ({rec.total_occurrences}) is below completed occurrences ({done})"
                )
            return rec
        if name in ("sort_key", "required_minutes"):
            try:
                value = int(value)
            except (TypeError, ValueError) as e:
                raise InvalidItem(f"{_camel(name)} must be an integer") from e
            if name == "required_minutes" and value < 0:
                raise InvalidItem("requiredMinutes must be >= 0")
            return value
        return value

    # ── Bulk ──────────────────────────────────────────────────

    def import_state(self, incoming: AppState, mode: str = "combine") -> AppState:
        merged = merge_states(self.state, incoming, mode)
        self._install(merged)
        logger.info("Imported %d items (%s)", len(incoming.items), mode)
        self._persist()
        return merged

    def clear_all(self) -> None:
        """Full data clear: the only path that drops items and log entries."""
        self._install(AppState())
        if self.store is not None:
            self.store.clear()
        logger.info("All data cleared")

    def snapshot(self) -> dict[str, Any]:
        """Export form of the state: every item brought current, status re-derived."""
        now = self.now()
        view = copy.copy(self.state)
        view.items = [self._project(i, now) for i in self.state.items]
        return serialize(view)

    # ── Read projections ──────────────────────────────────────

    def _project(self, item: Item, now: datetime) -> Item:
        return project(item, now, self.week_start_day, self.timezone)

    def get_item(self, item_id: str) -> Item:
        _, item = self._find(item_id, include_deleted=True)
        return self._project(item, self.now())

    def items_by_tab(self, tab: str, include_archived: bool = False) -> list[Item]:
        item_class_for(tab)
        now = self.now()
        views = [
            self._project(i, now)
            for i in self.state.items
            if i.tab == tab and not i.is_deleted and (include_archived or not i.is_archived)
        ]
        views.sort(key=lambda i: (_STATUS_ORDER.get(i.status, 3), i.sort_key))
        return views

    def running_timers(self) -> list[TimeItem]:
        now = self.now()
        return [
            self._project(i, now)
            for i in self.state.items
            if isinstance(i, TimeItem) and i.is_running and not i.is_deleted
        ]
