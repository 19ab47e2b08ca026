"""File-based JSON tables guarded by a single re-entrant lock.

Each table is a JSON list of row dicts in ``<base_dir>/<name>.json``.  All
stores that share a ``Database`` serialise their read-modify-write cycles
through :meth:`Database.transaction`, which makes multi-table operations
(dedup-then-insert, send-and-bump) atomic within the process.
"""

from __future__ import annotations

import json
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional


class Database:
    """A directory of JSON tables with a process-wide lock."""

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".parley" / "messaging"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    @property
    def base_dir(self) -> Path:
        return self._base

    def _path(self, table: str) -> Path:
        return self._base / f"{table}.json"

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Hold the lock for the duration of a multi-step operation."""
        with self._lock:
            yield self

    def read(self, table: str) -> list[dict]:
        path = self._path(table)
        with self._lock:
            if not path.exists():
                return []
            try:
                data = json.loads(path.read_text())
                return data if isinstance(data, list) else []
            except (json.JSONDecodeError, OSError):
                return []

    def write(self, table: str, rows: list[dict]) -> None:
        path = self._path(table)
        tmp = path.with_suffix(".json.tmp")
        with self._lock:
            tmp.write_text(json.dumps(rows, indent=2, default=str))
            os.replace(tmp, path)
