"""
Storage backends for serialized quota records.

Every backend maps a namespaced key (``quota:<account id>``) to the JSON
text of one record and offers whole-store ``load_all``/``save_all``.
Backends raise their native I/O errors; the repository decides whether
those errors are fatal.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional

from .db import DEFAULT_DB_PATH, get_connection, initialize_schema


# One lock per physical store, shared by every backend instance that
# points at it.
_store_locks: Dict[str, threading.RLock] = {}
_store_locks_guard = threading.Lock()


def store_lock(location: str) -> threading.RLock:
    """Return the process-wide lock for a store location."""
    with _store_locks_guard:
        lock = _store_locks.get(location)
        if lock is None:
            lock = _store_locks[location] = threading.RLock()
        return lock


class StorageBackend:
    """Interface shared by all backends."""

    def initialize(self) -> None:
        """Create the underlying store if it does not exist yet."""
        raise NotImplementedError

    def load_all(self) -> Dict[str, str]:
        raise NotImplementedError

    def save_all(self, data: Dict[str, str]) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        """Human readable location, used by the CLI."""
        return self.__class__.__name__

    @property
    def lock(self) -> threading.RLock:
        """Lock guarding read-modify-write cycles on this store."""
        raise NotImplementedError


class MemoryBackend(StorageBackend):
    """Process-local store, used by tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self.save_count = 0
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def initialize(self) -> None:
        pass

    def load_all(self) -> Dict[str, str]:
        return dict(self._data)

    def save_all(self, data: Dict[str, str]) -> None:
        self._data = dict(data)
        self.save_count += 1

    def describe(self) -> str:
        return "memory"


class JsonFileBackend(StorageBackend):
    """Single JSON document on disk, compatible with ``quota_data.json``.

    Writes go to a temporary file in the same directory which then
    replaces the target, so a crash mid-write never leaves a truncated
    document behind.
    """

    def __init__(self, path: str = "quota_data.json"):
        self.path = Path(path)

    @property
    def lock(self) -> threading.RLock:
        return store_lock("json:" + os.path.abspath(self.path))

    def initialize(self) -> None:
        if not self.path.exists():
            self.save_all({})

    def load_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self.path} does not contain a JSON object")
        return data

    def save_all(self, data: Dict[str, str]) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(directory), prefix=".quota-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def describe(self) -> str:
        return f"json:{self.path}"


class SqliteBackend(StorageBackend):
    """Key/value table in a SQLite database.

    ``save_all`` rewrites the table inside one transaction so readers see
    either the old or the new store, never a mix.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    @property
    def lock(self) -> threading.RLock:
        return store_lock("sqlite:" + os.path.abspath(self.db_path))

    def initialize(self) -> None:
        initialize_schema(self.db_path)

    def load_all(self) -> Dict[str, str]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='quota_record'"
            )
            if cursor.fetchone() is None:
                return {}
            cursor = conn.execute("SELECT key, value FROM quota_record")
            return {row[0]: row[1] for row in cursor.fetchall()}
        finally:
            conn.close()

    def save_all(self, data: Dict[str, str]) -> None:
        initialize_schema(self.db_path)
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("DELETE FROM quota_record")
            conn.executemany(
                "INSERT INTO quota_record (key, value) VALUES (?, ?)",
                [
                    (key, value if isinstance(value, str) else json.dumps(value))
                    for key, value in data.items()
                ]
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def describe(self) -> str:
        return f"sqlite:{self.db_path}"
