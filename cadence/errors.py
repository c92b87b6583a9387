"""Exception types raised by the cadence core."""

from __future__ import annotations


class CadenceError(Exception):
    """Base class for all cadence errors."""


class ItemNotFound(CadenceError, KeyError):
    def __init__(self, item_id: str):
        super().__init__(item_id)
        self.item_id = item_id

    def __str__(self) -> str:
        return f"Item not found: {self.item_id}"


class InvalidItem(CadenceError, ValueError):
    """Rejected create/update input (bad tab, category, field...)."""


class InvalidRecurrence(CadenceError, ValueError):
    """Recurrence that cannot be corrected defensively."""


class InvalidTimezone(CadenceError, ValueError):
    def __init__(self, name: str):
        super().__init__(f"Unknown timezone: {name!r}")
        self.name = name


class AlreadyRunning(CadenceError, ValueError):
    def __init__(self, item_id: str, running_id: str | None = None):
        if running_id and running_id != item_id:
            msg = f"A timer is already running on {running_id}. Stop it first."
        else:
            msg = f"Timer already running on {item_id}."
        super().__init__(msg)
        self.item_id = item_id
        self.running_id = running_id or item_id


class NotRunning(CadenceError, ValueError):
    def __init__(self, item_id: str):
        super().__init__(f"No running timer on {item_id}.")
        self.item_id = item_id


class SnapshotError(CadenceError, ValueError):
    """Snapshot that does not have the expected structure."""


class PersistenceFailure(CadenceError):
    """Saving or loading the snapshot failed.

    In-memory state stays authoritative for the session; the caller decides
    whether to retry or warn.
    """
