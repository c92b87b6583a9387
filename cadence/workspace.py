"""Workspace root, settings and path helpers for cadence."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cadence.clock import resolve_timezone
from cadence.errors import InvalidTimezone
from cadence.models import Settings
from cadence.storage import SnapshotStore, read_yaml, write_yaml

logger = logging.getLogger(__name__)


def workspace_root() -> Path:
    """Directory holding settings.yaml and state.json."""
    return Path(
        os.environ.get("CADENCE_ROOT", str(Path.home() / "cadence"))
    ).expanduser().resolve()


def settings_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "settings.yaml"


def snapshot_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "state.json"


def load_settings(root: Path | None = None) -> Settings:
    """Read settings.yaml; missing file or bad values fall back to defaults."""
    settings = Settings.from_dict(read_yaml(settings_path(root)))
    try:
        resolve_timezone(settings.timezone)
    except InvalidTimezone:
        logger.warning("Invalid timezone %r in settings, falling back to UTC", settings.timezone)
        settings.timezone = "UTC"
    return settings


def save_settings(settings: Settings, root: Path | None = None) -> None:
    write_yaml(settings_path(root), settings.to_dict())


def open_store(root: Path | None = None) -> SnapshotStore:
    return SnapshotStore(snapshot_path(root))
