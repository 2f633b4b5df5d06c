from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional

from gradesync.domain.errors import StorageError

logger = logging.getLogger(__name__)

SUITE_FILENAME = "shared.sqlite3"


class KeyValueStore:
    """Flat key/value storage with JSON-encoded values.

    Backs both the app's own preferences and the shared container the widget
    process reads. Several processes may open the same file; writes are
    last-writer-wins per key.
    """

    def __init__(self, db_path: str, *, read_only: bool = False) -> None:
        self.db_path = db_path
        self.read_only = read_only
        self._lock = threading.Lock()
        try:
            if read_only:
                # never creates the file or the table
                uri = Path(db_path).resolve().as_uri() + "?mode=ro"
                self.conn = sqlite3.connect(uri, uri=True, check_same_thread=False, timeout=5.0)
                try:
                    self.conn.execute("SELECT 1 FROM entries LIMIT 1").fetchall()
                except sqlite3.Error:
                    self.conn.close()
                    raise
            else:
                if db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
                self.conn = sqlite3.connect(db_path, check_same_thread=False, timeout=5.0)
                with self.conn:
                    self.conn.execute(
                        "CREATE TABLE IF NOT EXISTS entries (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
                    )
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"Cannot open key/value store at {db_path}: {exc}") from exc

    @classmethod
    def open_suite(cls, directory: str | Path, *, read_only: bool = False) -> Optional["KeyValueStore"]:
        """Open the store inside a shared container, or None when the container is not provisioned.

        A read-only open also yields None until the writer has created the store.
        """
        directory = Path(directory)
        if not directory.is_dir():
            logger.warning("Shared container %s is not provisioned", directory)
            return None
        try:
            return cls(str(directory / SUITE_FILENAME), read_only=read_only)
        except StorageError as exc:
            logger.warning("Shared container %s is not accessible: %s", directory, exc)
            return None

    def close(self) -> None:
        self.conn.close()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            try:
                row = self.conn.execute("SELECT value FROM entries WHERE key=?", (key,)).fetchone()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except ValueError:
            logger.warning("Discarding undecodable value for key %r", key)
            return default

    def contains(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._lock:
            try:
                with self.conn:
                    self.conn.execute(
                        """INSERT INTO entries(key, value) VALUES(?, ?)
                           ON CONFLICT(key) DO UPDATE SET value=excluded.value""",
                        (key, encoded),
                    )
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    def remove(self, key: str) -> None:
        self.remove_many([key])

    def remove_many(self, keys: list[str]) -> None:
        with self._lock:
            try:
                with self.conn:
                    self.conn.executemany("DELETE FROM entries WHERE key=?", [(k,) for k in keys])
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            try:
                rows = self.conn.execute("SELECT key FROM entries ORDER BY key").fetchall()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        return [row[0] for row in rows if row[0].startswith(prefix)]

    # Typed accessors return None when the key is missing or holds another type.

    def get_bool(self, key: str) -> Optional[bool]:
        value = self.get(key)
        return value if isinstance(value, bool) else None

    def get_int(self, key: str) -> Optional[int]:
        value = self.get(key)
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value

    def get_float(self, key: str) -> Optional[float]:
        value = self.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    def get_str(self, key: str) -> Optional[str]:
        value = self.get(key)
        return value if isinstance(value, str) else None


_MISSING = object()
