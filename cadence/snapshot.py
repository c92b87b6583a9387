"""Snapshot codec and import merging.

The snapshot is a JSON-ready dict. Storage decides where it goes; this module
only guarantees ``deserialize(serialize(state)) == state``.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any

from cadence.errors import SnapshotError
from cadence.models import ActionLog, AppState, Category, Item

SNAPSHOT_VERSION = 1
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)
MERGE_MODES = ("combine", "overwrite")


def serialize(state: AppState) -> dict[str, Any]:
    d = state.to_dict()
    d["version"] = SNAPSHOT_VERSION
    return d


def deserialize(snapshot: dict[str, Any]) -> AppState:
    """Rebuild AppState from a snapshot dict. Raises SnapshotError on bad shape."""
    if not isinstance(snapshot, dict):
        raise SnapshotError("Snapshot must be a JSON object")
    if not isinstance(snapshot.get("items", []), list) or not isinstance(snapshot.get("actions", []), list):
        raise SnapshotError("Invalid state structure: items and actions must be lists")
    version = snapshot.get("version", SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        raise SnapshotError(f"Unsupported snapshot version: {version!r}")
    try:
        return AppState.from_dict(snapshot)
    except (TypeError, ValueError, KeyError) as e:
        raise SnapshotError(f"Invalid snapshot: {e}") from e


# ── Merging ───────────────────────────────────────────────────


def _newer(a: Item, b: Item) -> bool:
    """True if b was updated strictly after a."""
    if b.updated_at is None:
        return False
    if a.updated_at is None:
        return True
    return b.updated_at > a.updated_at


def _merge_items(existing: list[Item], incoming: list[Item]) -> list[Item]:
    merged: dict[str, Item] = {i.id: i for i in existing}
    order = [i.id for i in existing]
    for item in incoming:
        current = merged.get(item.id)
        if current is None:
            order.append(item.id)
            merged[item.id] = item
        elif _newer(current, item):
            merged[item.id] = item
    return [copy.deepcopy(merged[i]) for i in order]


def _merge_actions(existing: list[ActionLog], incoming: list[ActionLog]) -> list[ActionLog]:
    seen = {a.id for a in existing}
    result = list(existing)
    for entry in incoming:
        if entry.id not in seen:
            seen.add(entry.id)
            result.append(entry)
    # stable: entries sharing a timestamp keep their relative order
    return sorted(result, key=lambda a: a.timestamp or _EPOCH)


def _merge_categories(existing: list[Category], incoming: list[Category]) -> list[Category]:
    result = copy.deepcopy(existing)
    by_id = {c.id: c for c in result}
    for cat in incoming:
        current = by_id.get(cat.id)
        if current is None:
            new_cat = copy.deepcopy(cat)
            result.append(new_cat)
            by_id[cat.id] = new_cat
            continue
        known = {s.id for s in current.subcategories}
        for sub in cat.subcategories:
            if sub.id not in known:
                current.subcategories.append(copy.deepcopy(sub))
    return result


def merge_states(existing: AppState, incoming: AppState, mode: str = "combine") -> AppState:
    """Merge an imported state into the current one.

    combine: union by id; an item present on both sides keeps the copy with
    the later updated_at (ties keep the existing one); action entries are
    deduplicated by id and ordered by timestamp.
    overwrite: the incoming state replaces everything.
    """
    if mode == "overwrite":
        return copy.deepcopy(incoming)
    if mode != "combine":
        raise ValueError(f"Invalid merge mode: {mode!r}")
    return AppState(
        items=_merge_items(existing.items, incoming.items),
        actions=_merge_actions(existing.actions, incoming.actions),
        categories=_merge_categories(existing.categories, incoming.categories),
    )
