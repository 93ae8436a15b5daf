"""Append-only audit trail of alt-text changes, with revert and pruning.

Entries are never updated in place. A revert writes the previous value back
to the image store and appends a new ``revert`` entry describing the reverse
transition, so reverting the same entry twice leaves the image in the same
state (and the log with one more line).
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, replace
from typing import Callable

from smartalt.config import LoggingCfg
from smartalt.db.base import HostStorage
from smartalt.db.models import format_timestamp
from smartalt.errors import LogEntryNotFoundError, RevertError

logger = logging.getLogger(__name__)

SOURCES: tuple[str, ...] = ("heuristic", "ai", "ai-fallback", "manual", "revert", "system")
STATUSES: tuple[str, ...] = ("success", "error", "skipped")
SEVERITY_ORDER: dict[str, int] = {"debug": 0, "info": 1, "error": 2}

_DAY = 24 * 60 * 60

_COLUMNS = "id, time, image_id, document_id, old_alt, new_alt, source, model, status, severity, message"


@dataclass(frozen=True)
class LogEntry:
    """One change-log record.

    ``old_alt`` is None when the previous value is unknown and ``""`` when
    the image had no alt text; only the latter can be reverted.
    """

    old_alt: str | None = None
    new_alt: str | None = None
    image_id: int | None = None
    document_id: int | None = None
    source: str = "system"
    model: str | None = None
    status: str = "success"
    severity: str = "info"
    message: str | None = None
    time: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class LogStats:
    total: int
    errors: int
    ai_generated: int
    last_run: str | None


def should_record(severity: str, minimum: str) -> bool:
    """True if *severity* is at or above *minimum* (debug < info < error)."""
    return SEVERITY_ORDER.get(severity, 1) >= SEVERITY_ORDER.get(minimum, 1)


class ChangeLog:
    """Change log stored in the ``alt_log`` table."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        cfg: LoggingCfg,
        storage: HostStorage,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._conn = conn
        self._cfg = cfg
        self._storage = storage
        self._clock = clock

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def record(self, entry: LogEntry) -> int | None:
        """Append *entry* and return its id.

        Returns None without writing when logging is disabled or the entry's
        severity is below the configured minimum.
        """
        if not self._cfg.enabled or not should_record(entry.severity, self._cfg.level):
            return None
        if entry.source not in SOURCES:
            raise ValueError(f"Unknown change-log source '{entry.source}'")
        if entry.status not in STATUSES:
            raise ValueError(f"Unknown change-log status '{entry.status}'")

        cur = self._conn.execute(
            """
            INSERT INTO alt_log
                (time, image_id, document_id, old_alt, new_alt, source, model, status, severity, message)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.time or format_timestamp(self._clock()),
                entry.image_id,
                entry.document_id,
                entry.old_alt,
                entry.new_alt,
                entry.source,
                entry.model,
                entry.status,
                entry.severity,
                entry.message,
            ),
        )
        self._conn.commit()
        return cur.lastrowid

    def revert(self, log_id: int, actor: str | None = None) -> LogEntry:
        """Restore the alt text an entry replaced.

        An entry whose ``old_alt`` is ``""`` deletes the stored alt instead of
        storing an empty string.

        Returns:
            The appended ``revert`` entry (``id`` is None if it was filtered
            out by the logging threshold).

        Raises:
            LogEntryNotFoundError: No entry with *log_id*.
            RevertError: The entry has no image or no previous value.
        """
        entry = self.get(log_id)
        if entry is None:
            raise LogEntryNotFoundError(f"No change-log entry with id {log_id}.")
        if entry.image_id is None:
            raise RevertError(f"Entry {log_id} is not attached to an image; nothing to revert.")
        if entry.old_alt is None:
            raise RevertError(f"Entry {log_id} has no previous alt text to restore.")

        current = self._storage.get_image_alt_text(entry.image_id)
        if entry.old_alt == "":
            self._storage.delete_image_alt_text(entry.image_id)
        else:
            self._storage.set_image_alt_text(entry.image_id, entry.old_alt, force=True)

        message = f"Reverted entry {log_id}" + (f" by {actor}" if actor else "")
        revert_entry = LogEntry(
            old_alt=current,
            new_alt=entry.old_alt,
            image_id=entry.image_id,
            document_id=entry.document_id,
            source="revert",
            status="success",
            severity="info",
            message=message,
        )
        new_id = self.record(revert_entry)
        logger.info("Reverted change-log entry %d on image %d", log_id, entry.image_id)
        return replace(revert_entry, id=new_id)

    def prune(self, retention_days: int | None = None) -> int:
        """Delete entries older than *retention_days* (config default). Returns rows removed."""
        days = retention_days if retention_days is not None else self._cfg.retention_days
        cutoff = format_timestamp(self._clock() - days * _DAY)
        cur = self._conn.execute("DELETE FROM alt_log WHERE time < ?", (cutoff,))
        self._conn.commit()
        return cur.rowcount

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def get(self, log_id: int) -> LogEntry | None:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM alt_log WHERE id = ?", (log_id,)
        ).fetchone()
        return _row_to_entry(row) if row else None

    def list(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        image_id: int | None = None,
        document_id: int | None = None,
        status: str | None = None,
        source: str | None = None,
        newest_first: bool = True,
    ) -> list[LogEntry]:
        """Return entries matching the filters, newest first by default."""
        clauses: list[str] = []
        params: list[object] = []
        for column, value in (
            ("image_id", image_id),
            ("document_id", document_id),
            ("status", status),
            ("source", source),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        order = "DESC" if newest_first else "ASC"
        rows = self._conn.execute(
            f"SELECT {_COLUMNS} FROM alt_log{where} ORDER BY time {order}, id {order} LIMIT ? OFFSET ?",
            (*params, limit, offset),
        ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def stats(self) -> LogStats:
        row = self._conn.execute(
            """
            SELECT COUNT(*) AS total,
                   SUM(CASE WHEN status = 'error' THEN 1 ELSE 0 END) AS errors,
                   SUM(CASE WHEN source = 'ai' THEN 1 ELSE 0 END) AS ai_generated,
                   MAX(time) AS last_run
            FROM alt_log
            """
        ).fetchone()
        return LogStats(
            total=row["total"],
            errors=row["errors"] or 0,
            ai_generated=row["ai_generated"] or 0,
            last_run=row["last_run"],
        )


def _row_to_entry(row: sqlite3.Row) -> LogEntry:
    return LogEntry(
        id=row["id"],
        time=row["time"],
        image_id=row["image_id"],
        document_id=row["document_id"],
        old_alt=row["old_alt"],
        new_alt=row["new_alt"],
        source=row["source"],
        model=row["model"],
        status=row["status"],
        severity=row["severity"],
        message=row["message"],
    )
