"""SQLite connection layer for the smartalt host store."""

from __future__ import annotations

import sqlite3
from pathlib import Path


class Database:
    """Per-project SQLite database holding documents, images, the change log and transients."""

    def __init__(self, db_path: Path | str) -> None:
        """Remember where the store lives; nothing is opened until connect().

        Args:
            db_path: SQLite file, created on first connect.
                ``":memory:"`` opens a private in-memory database.
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection with row access by column name and return it."""
        # Concurrent renders share the file; wait for the writer instead of failing.
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        if self.db_path != ":memory:":
            conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """``with Database(path) as conn:`` opens a connection for the block."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
