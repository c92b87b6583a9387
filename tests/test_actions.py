"""Tests for cadence/actions.py: the append-only action log."""

import itertools

import pytest

from cadence.actions import ActionLogger, new_entry, new_id
from cadence.models import ChecklistItem, TimeItem
from conftest import utc


def _ids():
    counter = itertools.count(1)
    return lambda: f"a{next(counter)}"


def test_new_id_is_unique():
    assert new_id() != new_id()


def test_new_entry_copies_item_identity():
    item = TimeItem(id="t1", tab="spendMyTime")
    entry = new_entry(item, "timer_start", utc(2026, 1, 14), {"periodKey": "20260112"}, id_factory=lambda: "x")
    assert entry.id == "x"
    assert entry.item_id == "t1"
    assert entry.tab == "spendMyTime"
    assert entry.payload == {"periodKey": "20260112"}


def test_new_entry_rejects_unknown_type():
    with pytest.raises(ValueError, match="Invalid action type"):
        new_entry(ChecklistItem(id="c1"), "rename", utc(2026, 1, 14))


def test_logger_appends_in_order():
    entries = []
    log = ActionLogger(entries, id_factory=_ids())
    item = ChecklistItem(id="c1")
    log.record(item, "create", utc(2026, 1, 14))
    log.record(item, "complete", utc(2026, 1, 15))
    assert [e.type for e in log] == ["create", "complete"]
    assert [e.id for e in entries] == ["a1", "a2"]
    assert len(log) == 2


def test_build_does_not_append():
    log = ActionLogger([])
    log.build(ChecklistItem(id="c1"), "archive", utc(2026, 1, 14))
    assert len(log) == 0


def test_entries_for_and_last_activity():
    log = ActionLogger([], id_factory=_ids())
    a, b = ChecklistItem(id="a"), ChecklistItem(id="b")
    log.record(a, "create", utc(2026, 1, 1))
    log.record(b, "create", utc(2026, 1, 2))
    log.record(a, "complete", utc(2026, 1, 5))

    assert [e.type for e in log.entries_for("a")] == ["create", "complete"]
    assert log.last_activity("a") == utc(2026, 1, 5)
    assert log.last_activity("missing") is None


def test_entries_are_immutable():
    entry = new_entry(ChecklistItem(id="c1"), "create", utc(2026, 1, 14))
    with pytest.raises(AttributeError):
        entry.type = "delete"
