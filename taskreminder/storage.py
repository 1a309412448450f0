"""
storage.py
──────────
Simple JSON file-based persistence layer.

  - threading.Lock around file access (prevents interleaved writes)
  - Atomic file writes via os.replace() (rename-over-old-file trick)
  - A missing or corrupt file reads as empty; a failed write raises
    PersistenceError so callers never report success for unsaved data
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Union

from .errors import PersistenceError

logger = logging.getLogger(__name__)

TASKS_FILENAME = "tasks.json"


class JsonStore:
    """Reads and writes the task list as `{"tasks": [...]}`."""

    def __init__(self, data_dir: Union[str, Path]):
        self._data_dir = Path(data_dir)
        self._tasks_file = self._data_dir / TASKS_FILENAME
        self._lock = threading.Lock()

    @property
    def tasks_file(self) -> Path:
        return self._tasks_file

    def _read(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read %s (%s); starting empty", path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Unexpected content in %s; starting empty", path)
            return {}
        return data

    def _write(self, path: Path, data: Dict[str, Any]) -> None:
        """Atomic write: write to a tmp file then rename (os.replace)."""
        tmp = path.with_name(path.name + ".tmp")
        try:
            os.makedirs(path.parent, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)   # Atomic on POSIX; near-atomic on Windows
        except OSError as exc:
            raise PersistenceError(f"could not write {path}: {exc}") from exc

    # ── Task storage ──────────────────────────────────────────────────────────

    def load_tasks(self) -> List[Dict[str, Any]]:
        with self._lock:
            data = self._read(self._tasks_file)
        rows = data.get("tasks", [])
        if not isinstance(rows, list):
            return []
        return list(rows)

    def save_tasks(self, tasks: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._write(self._tasks_file, {"tasks": tasks})
