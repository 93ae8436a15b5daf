"""Forward-only migration runner for the smartalt database schema."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    id          INTEGER PRIMARY KEY,
    kind        TEXT NOT NULL DEFAULT 'post',
    title       TEXT NOT NULL DEFAULT '',
    excerpt     TEXT NOT NULL DEFAULT '',
    content     TEXT NOT NULL DEFAULT '',
    created_at  DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS images (
    id            INTEGER PRIMARY KEY,
    url           TEXT NOT NULL,
    parent_id     INTEGER REFERENCES documents(id) ON DELETE SET NULL,
    title         TEXT NOT NULL DEFAULT '',
    alt_text      TEXT,
    featured      INTEGER NOT NULL DEFAULT 0,
    ai_model      TEXT,
    ai_cached_at  TEXT,
    created_at    DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_images_url ON images(url);
CREATE INDEX IF NOT EXISTS idx_images_parent ON images(parent_id);

CREATE TABLE IF NOT EXISTS alt_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    time        TEXT NOT NULL,
    image_id    INTEGER,
    document_id INTEGER,
    old_alt     TEXT,
    new_alt     TEXT,
    source      TEXT NOT NULL DEFAULT 'manual',
    model       TEXT,
    status      TEXT NOT NULL DEFAULT 'success',
    severity    TEXT NOT NULL DEFAULT 'info',
    message     TEXT
);

CREATE INDEX IF NOT EXISTS idx_alt_log_time ON alt_log(time);
CREATE INDEX IF NOT EXISTS idx_alt_log_image ON alt_log(image_id);
CREATE INDEX IF NOT EXISTS idx_alt_log_status ON alt_log(status);

CREATE TABLE IF NOT EXISTS transients (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    expires_at  REAL
);
"""

# (version, sql) pairs, never edited once released; new schema changes get a new entry.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Bring *conn* up to the newest schema version.

    Versions already recorded in ``schema_version`` are skipped, so calling
    this on every open is harmless.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
