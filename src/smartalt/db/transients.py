"""Key-value store with per-entry TTL, backed by the ``transients`` table.

Used for circuit-breaker counters, bulk job state and save-hook dedup
windows. Values are JSON-encoded. Expired rows read as missing and are
purged lazily.
"""

from __future__ import annotations

import json
import sqlite3
import time
from typing import Any, Callable


class TransientStore:
    """TTL key-value store sharing the host database connection."""

    def __init__(
        self, conn: sqlite3.Connection, clock: Callable[[], float] = time.time
    ) -> None:
        self._conn = conn
        self._clock = clock

    def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for *key*, or *default* if missing or expired."""
        row = self._conn.execute(
            "SELECT value, expires_at FROM transients WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default
        if row["expires_at"] is not None and row["expires_at"] <= self._clock():
            self.delete(key)
            return default
        return json.loads(row["value"])

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store *value* under *key*; *ttl* in seconds, None for no expiry."""
        expires_at = self._clock() + ttl if ttl is not None else None
        self._conn.execute(
            """
            INSERT INTO transients (key, value, expires_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                expires_at = excluded.expires_at
            """,
            (key, json.dumps(value), expires_at),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM transients WHERE key = ?", (key,))
        self._conn.commit()

    def increment(self, key: str, ttl: float | None = None) -> int:
        """Atomically add one to an integer counter and refresh its TTL.

        A missing or expired counter restarts at 1. The read-modify-write is
        a single UPSERT, so concurrent callers never lose an increment.
        """
        now = self._clock()
        expires_at = now + ttl if ttl is not None else None
        rows = self._conn.execute(
            """
            INSERT INTO transients (key, value, expires_at) VALUES (?, '1', ?)
            ON CONFLICT(key) DO UPDATE SET
                value = CASE
                    WHEN transients.expires_at IS NOT NULL AND transients.expires_at <= ?
                        THEN '1'
                    ELSE CAST(CAST(transients.value AS INTEGER) + 1 AS TEXT)
                END,
                expires_at = excluded.expires_at
            RETURNING value
            """,
            (key, expires_at, now),
        ).fetchall()
        self._conn.commit()
        return int(rows[0][0])

    def purge_expired(self) -> int:
        """Delete every expired entry. Returns the number of rows removed."""
        cur = self._conn.execute(
            "DELETE FROM transients WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self._clock(),),
        )
        self._conn.commit()
        return cur.rowcount
