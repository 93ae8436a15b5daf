"""Database schema initialization."""

from __future__ import annotations

import sqlite3

CURRENT_VERSION = 1


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    from smartalt.db.migrations import run_migrations

    run_migrations(conn)


def open_db(db_path) -> sqlite3.Connection:
    """Open *db_path* and make sure the schema is current."""
    from smartalt.db.connection import Database

    conn = Database(db_path).connect()
    initialize(conn)
    return conn
