"""
Key/value store using SQLite.

One logical store holds both the metadata indexes and the content records,
separated by key prefix ("docs:index", "docs:content:<id>", ...). Values
are opaque strings. An optional TTL makes a key expire; expired keys read
as missing and are removed lazily.

There is no compare-and-swap: a put always overwrites.
"""

import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SqliteKVStore:
    """
    SQLite-backed string key/value store with optional per-key TTL.

    Safe to share between threads: every statement runs under one lock.
    """

    def __init__(self, db_path: Path, *, clock: Callable[[], float] = time.time):
        """
        Args:
            db_path: Path to SQLite database file
            clock: Time source in epoch seconds (injectable for tests)
        """
        self._db_path = db_path
        self._clock = clock
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL
            )
        """)
        self._conn.commit()

    def get(self, key: str) -> Optional[str]:
        """Return the value for `key`, or None if missing or expired."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value, expires_at FROM kv WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return None
            value, expires_at = row
            if expires_at is not None and expires_at <= self._clock():
                self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                self._conn.commit()
                logger.debug("Expired key %s", key)
                return None
            return value

    def put(self, key: str, value: str, *, ttl: Optional[float] = None) -> None:
        """
        Store `value` under `key`, replacing any previous value.

        Args:
            key: Storage key
            value: String value
            ttl: Seconds until the key expires (None = never)
        """
        if ttl is not None and ttl <= 0:
            raise ValueError(f"ttl must be positive (got {ttl})")
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, expires_at),
            )
            self._conn.commit()

    def delete(self, key: str) -> None:
        """Delete `key`. Deleting a missing key is not an error."""
        with self._lock:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self._conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
