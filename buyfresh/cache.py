"""Small key-value stores with a time-to-live, used to keep session credentials."""

import logging
import sqlite3
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from .config import CACHE_DB_FILE, ensure_config_dir

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class KeyValueStore(Protocol):
    """What the session manager needs from a durable cache."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Process-local store; handy for tests and one-off CLI runs."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return value

    def set(self, key: str, value: str, ttl: int) -> None:
        self._data[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


def get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    """Get a database connection."""
    if db_path is None:
        ensure_config_dir()
    path = db_path or CACHE_DB_FILE
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Initialize the database schema."""
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS cache (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            expires_at REAL NOT NULL
        );
    """)
    conn.commit()


class SqliteKeyValueStore:
    """Durable store backed by a SQLite file in the config directory."""

    def __init__(self, db_path: Path | None = None, clock: Clock = time.time) -> None:
        self.db_path = db_path
        self._clock = clock
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = get_connection(self.db_path)
            init_db(self._conn)
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def get(self, key: str) -> str | None:
        row = self.conn.execute(
            "SELECT value, expires_at FROM cache WHERE key = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        if self._clock() >= row["expires_at"]:
            logger.debug("Cache entry %s expired", key)
            self.delete(key)
            return None
        return row["value"]

    def set(self, key: str, value: str, ttl: int) -> None:
        self.conn.execute(
            """
            INSERT INTO cache (key, value, expires_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                expires_at = excluded.expires_at
            """,
            (key, value, self._clock() + ttl),
        )
        self.conn.commit()

    def delete(self, key: str) -> None:
        self.conn.execute("DELETE FROM cache WHERE key = ?", (key,))
        self.conn.commit()

    def purge_expired(self) -> int:
        """Remove all expired entries. Returns the number removed."""
        cursor = self.conn.execute("DELETE FROM cache WHERE expires_at <= ?", (self._clock(),))
        self.conn.commit()
        return cursor.rowcount
