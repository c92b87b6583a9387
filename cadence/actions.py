"""Append-only action log."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Iterator

from cadence.models import ACTION_TYPES, ActionLog, Item


def new_id() -> str:
    return str(uuid.uuid4())


def new_entry(
    item: Item,
    action_type: str,
    timestamp: datetime,
    payload: dict[str, Any] | None = None,
    id_factory: Callable[[], str] = new_id,
) -> ActionLog:
    if action_type not in ACTION_TYPES:
        raise ValueError(f"Invalid action type: {action_type!r}")
    return ActionLog(
        id=id_factory(),
        item_id=item.id,
        tab=item.tab,
        type=action_type,
        timestamp=timestamp,
        payload=payload,
    )


class ActionLogger:
    """Wraps the state's action list. Entries are only ever appended."""

    def __init__(self, entries: list[ActionLog], id_factory: Callable[[], str] = new_id):
        self._entries = entries
        self._id_factory = id_factory

    def build(
        self,
        item: Item,
        action_type: str,
        timestamp: datetime,
        payload: dict[str, Any] | None = None,
    ) -> ActionLog:
        return new_entry(item, action_type, timestamp, payload, self._id_factory)

    def append(self, entry: ActionLog) -> ActionLog:
        self._entries.append(entry)
        return entry

    def record(
        self,
        item: Item,
        action_type: str,
        timestamp: datetime,
        payload: dict[str, Any] | None = None,
    ) -> ActionLog:
        return self.append(self.build(item, action_type, timestamp, payload))

    def entries_for(self, item_id: str) -> list[ActionLog]:
        return [e for e in self._entries if e.item_id == item_id]

    def last_activity(self, item_id: str) -> datetime | None:
        stamps = [e.timestamp for e in self._entries if e.item_id == item_id]
        return max(stamps) if stamps else None

    def __iter__(self) -> Iterator[ActionLog]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
