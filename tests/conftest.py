"""Shared test fixtures for cadence tests."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import yaml

from cadence import LifecycleManager, load_settings, open_store


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class StepClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, instant: datetime) -> None:
        self.now = instant

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with a settings file."""
    root = tmp_path / "workspace"
    root.mkdir(parents=True)

    settings = {
        "timezone": "UTC",
        "week_start_day": 1,
        "allow_concurrent_timers": False,
    }
    (root / "settings.yaml").write_text(
        yaml.dump(settings, default_flow_style=False), encoding="utf-8"
    )

    os.environ["CADENCE_ROOT"] = str(root)
    yield root
    if "CADENCE_ROOT" in os.environ:
        del os.environ["CADENCE_ROOT"]


@pytest.fixture
def clock() -> StepClock:
    # Wednesday 2026-01-14, inside the Monday-based week starting 2026-01-12
    return StepClock(utc(2026, 1, 14, 12, 0))


@pytest.fixture
def manager(workspace: Path, clock: StepClock) -> LifecycleManager:
    return LifecycleManager.load(open_store(workspace), load_settings(workspace), clock=clock)
