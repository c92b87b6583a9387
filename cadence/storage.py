"""File-backed snapshot storage with atomic writes."""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from cadence.errors import PersistenceFailure

logger = logging.getLogger(__name__)


def read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping, returning {} if the file is missing or empty."""
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    result = yaml.safe_load(text)
    return result if isinstance(result, dict) else {}


def write_yaml(path: Path, data: dict[str, Any]) -> None:
    atomic_write(path, yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False))


def atomic_write(path: Path, content: str) -> None:
    """Write via temp file + flock + fsync + rename so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=path.suffix)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        os.replace(temp_path, path)
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


class SnapshotStore:
    """Keeps one JSON snapshot at *path*.

    Any I/O or decoding problem surfaces as PersistenceFailure; nothing is
    retried here.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> dict[str, Any] | None:
        """Return the stored snapshot, or None if nothing was saved yet."""
        if not self.path.exists():
            return None
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceFailure(f"Could not read {self.path}: {e}") from e
        if not text.strip():
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PersistenceFailure(f"Corrupt snapshot in {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceFailure(f"Corrupt snapshot in {self.path}: not an object")
        return data

    def save(self, snapshot: dict[str, Any]) -> None:
        content = json.dumps(snapshot, indent=2, ensure_ascii=False) + "\n"
        try:
            atomic_write(self.path, content)
        except OSError as e:
            logger.error("Saving snapshot to %s failed: %s", self.path, e)
            raise PersistenceFailure(f"Could not write {self.path}: {e}") from e

    def clear(self) -> None:
        """Remove the stored snapshot (full data clear)."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceFailure(f"Could not remove {self.path}: {e}") from e
