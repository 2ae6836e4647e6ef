"""
SPINWHEEL — Keyed Storage Medium

Durable key/value storage shared by every open instance of the app.

Two backends with the same interface:
  - SqliteStorage: one `kv_store` table in a SQLite file. Several processes
    (or "tabs") pointing at the same file share state. `data_version()` is
    SQLite's PRAGMA data_version, which moves whenever *another* connection
    commits. That is the cross-context change signal.
  - MemoryStorage: dict-backed, isolated per instance. Used by tests.

Every write bumps a per-key version. Passing `expected_version` to `set()`
turns the write into a compare-and-set that raises StaleWriteError when
someone else wrote in between.

Usage:
    from spinwheel.config.storage import SqliteStorage
    storage = SqliteStorage("spinwheel.db")
    storage.set("wheel_config", '{"200": {...}}')
    raw = storage.get("wheel_config")
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Optional

from spinwheel.errors import StaleWriteError

logger = logging.getLogger("spinwheel.storage")


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    updated_at TEXT DEFAULT (CURRENT_TIMESTAMP)
);
"""


class MemoryStorage:
    """In-process storage. Nothing is shared between instances."""

    def __init__(self):
        self._values: dict[str, str] = {}
        self._versions: dict[str, int] = {}
        self._data_version = 0

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def version(self, key: str) -> int:
        """Current write version of `key` (0 when absent)."""
        return self._versions.get(key, 0)

    def set(self, key: str, value: str, expected_version: Optional[int] = None) -> int:
        current = self.version(key)
        if expected_version is not None and expected_version != current:
            raise StaleWriteError(key, expected_version, current)
        new_version = current + 1
        self._values[key] = value
        self._versions[key] = new_version
        return new_version

    def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._versions.pop(key, None)

    def data_version(self) -> int:
        # No other writers can exist for a private dict.
        return self._data_version

    def close(self) -> None:
        pass


class SqliteStorage:
    """SQLite-backed storage shared by every connection to the same file."""

    def __init__(self, path: str = "spinwheel.db", timeout: float = 10):
        self.path = str(path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            self.path, timeout=timeout,
            isolation_level=None,       # explicit BEGIN/COMMIT below
            check_same_thread=False,    # guarded by self._lock
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(SCHEMA_SQL)
        logger.info(f"Storage opened ({self.path})")

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", [key]
            ).fetchone()
        return row[0] if row else None

    def version(self, key: str) -> int:
        with self._lock:
            return self._version_locked(key)

    def _version_locked(self, key: str) -> int:
        row = self._conn.execute(
            "SELECT version FROM kv_store WHERE key = ?", [key]
        ).fetchone()
        return row[0] if row else 0

    def set(self, key: str, value: str, expected_version: Optional[int] = None) -> int:
        """Write `value` under `key` and return the new version."""
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                current = self._version_locked(key)
                if expected_version is not None and expected_version != current:
                    raise StaleWriteError(key, expected_version, current)
                self._conn.execute(
                    """INSERT INTO kv_store (key, value, version, updated_at)
                       VALUES (?, ?, ?, ?)
                       ON CONFLICT(key) DO UPDATE SET
                           value = excluded.value,
                           version = excluded.version,
                           updated_at = excluded.updated_at""",
                    [key, value, current + 1, now],
                )
                self._conn.execute("COMMIT")
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
        return current + 1

    def delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", [key])

    def data_version(self) -> int:
        """Changes only when another connection commits to the file."""
        with self._lock:
            return self._conn.execute("PRAGMA data_version").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
