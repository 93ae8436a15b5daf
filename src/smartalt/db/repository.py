"""SQLite implementation of the host storage capability.

Single interface for documents, images, stored alt text and AI cache
metadata. The change log and transient store live in their own modules but
share the same connection.
"""

from __future__ import annotations

import sqlite3
import time
from typing import Callable

from smartalt.db.base import HostStorage
from smartalt.db.models import (
    AiCache,
    CanonicalImage,
    Document,
    DocumentContext,
    format_timestamp,
    parse_timestamp,
)
from smartalt.urls import canonical_filename

_DAY = 24 * 60 * 60

_IMAGE_COLUMNS = "id, url, parent_id, title, alt_text, featured, ai_model, ai_cached_at"


class Repository(HostStorage):
    """Data access layer for documents and images.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(
        self, conn: sqlite3.Connection, clock: Callable[[], float] = time.time
    ) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see smartalt.db.schema.initialize).
            clock: Source of "now" in epoch seconds (AI cache expiry).
        """
        self._conn = conn
        self._clock = clock

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(self, document: Document) -> int:
        """Insert or replace a document and return its id."""
        self._conn.execute(
            """
            INSERT INTO documents (id, kind, title, excerpt, content)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                kind = excluded.kind,
                title = excluded.title,
                excerpt = excluded.excerpt,
                content = excluded.content
            """,
            (document.id, document.kind, document.title, document.excerpt, document.content),
        )
        self._conn.commit()
        return document.id

    def get_document(self, document_id: int) -> Document | None:
        row = self._conn.execute(
            "SELECT id, kind, title, excerpt, content, created_at FROM documents WHERE id = ?",
            (document_id,),
        ).fetchone()
        if row is None:
            return None
        return Document(
            id=row["id"],
            kind=row["kind"],
            title=row["title"],
            excerpt=row["excerpt"],
            content=row["content"],
            created_at=row["created_at"],
        )

    def get_document_context(self, parent_id: int) -> DocumentContext | None:
        document = self.get_document(parent_id)
        return document.context if document else None

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def add_image(
        self,
        url: str,
        *,
        parent_id: int | None = None,
        title: str = "",
        alt_text: str | None = None,
        featured: bool = False,
        image_id: int | None = None,
    ) -> int:
        """Register an image and return its id."""
        cur = self._conn.execute(
            """
            INSERT INTO images (id, url, parent_id, title, alt_text, featured)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (image_id, url, parent_id, title, alt_text, int(featured)),
        )
        self._conn.commit()
        return cur.lastrowid

    def get_image(self, image_id: int) -> CanonicalImage | None:
        row = self._conn.execute(
            f"SELECT {_IMAGE_COLUMNS} FROM images WHERE id = ?", (image_id,)
        ).fetchone()
        return _row_to_image(row) if row else None

    def count_images(self) -> tuple[int, int]:
        """Return (total images, images with non-empty alt)."""
        row = self._conn.execute(
            "SELECT COUNT(*), SUM(CASE WHEN alt_text IS NOT NULL AND alt_text != '' THEN 1 ELSE 0 END) FROM images"
        ).fetchone()
        return row[0], row[1] or 0

    def get_image_alt_text(self, image_id: int) -> str:
        row = self._conn.execute(
            "SELECT alt_text FROM images WHERE id = ?", (image_id,)
        ).fetchone()
        return (row["alt_text"] or "") if row else ""

    def set_image_alt_text(self, image_id: int, text: str, force: bool = False) -> bool:
        """Conditionally store *text* as the image's alt.

        The check and the write are a single UPDATE so two concurrent writers
        cannot both overwrite a non-empty value without *force*.

        Returns:
            True if a row was updated; False for empty *text*, an unknown
            image, or an existing alt without *force*.
        """
        if not image_id or not text:
            return False
        cur = self._conn.execute(
            """
            UPDATE images SET alt_text = ?
            WHERE id = ? AND (? OR alt_text IS NULL OR alt_text = '')
            """,
            (text, image_id, int(force)),
        )
        self._conn.commit()
        return cur.rowcount > 0

    def delete_image_alt_text(self, image_id: int) -> None:
        self._conn.execute("UPDATE images SET alt_text = NULL WHERE id = ?", (image_id,))
        self._conn.commit()

    def get_attached_images(self, parent_id: int) -> list[int]:
        rows = self._conn.execute(
            "SELECT id FROM images WHERE parent_id = ? ORDER BY featured DESC, id",
            (parent_id,),
        ).fetchall()
        return [r["id"] for r in rows]

    def find_image_by_url(self, url: str, parent_id: int | None = None) -> int | None:
        """Resolve *url* to an image id.

        Tries an exact URL match first, then a file-name match among the
        parent's images so resized variants (``photo-300x200.jpg``) resolve
        to the original upload.
        """
        if not url:
            return None
        row = self._conn.execute(
            "SELECT id FROM images WHERE url = ? ORDER BY id LIMIT 1", (url,)
        ).fetchone()
        if row:
            return row["id"]
        if parent_id is None:
            return None

        wanted = canonical_filename(url)
        if not wanted:
            return None
        rows = self._conn.execute(
            "SELECT id, url FROM images WHERE parent_id = ? ORDER BY id", (parent_id,)
        ).fetchall()
        for r in rows:
            if canonical_filename(r["url"]) == wanted:
                return r["id"]
        return None

    def list_candidate_images(self, scope: str, include_with_alt: bool = False) -> list[int]:
        """Image ids for *scope*, newest first.

        Args:
            scope: ``all``, ``attached_only`` or ``attached_products``.
            include_with_alt: Include images that already have alt text
                (force-update runs).
        """
        clauses: list[str] = []
        if scope in ("attached_only", "attached_products"):
            clauses.append("parent_id IS NOT NULL")
        if scope == "attached_products":
            clauses.append("parent_id IN (SELECT id FROM documents WHERE kind = 'product')")
        if not include_with_alt:
            clauses.append("(alt_text IS NULL OR alt_text = '')")
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._conn.execute(f"SELECT id FROM images{where} ORDER BY id DESC").fetchall()
        return [r["id"] for r in rows]

    # ------------------------------------------------------------------
    # AI cache metadata
    # ------------------------------------------------------------------

    def get_ai_cache(self, image_id: int, ttl_days: int) -> AiCache | None:
        row = self._conn.execute(
            "SELECT ai_model, ai_cached_at FROM images WHERE id = ?", (image_id,)
        ).fetchone()
        if row is None or not row["ai_model"] or not row["ai_cached_at"]:
            return None

        expires = parse_timestamp(row["ai_cached_at"]) + ttl_days * _DAY
        if self._clock() > expires:
            self._conn.execute(
                "UPDATE images SET ai_model = NULL, ai_cached_at = NULL WHERE id = ?",
                (image_id,),
            )
            self._conn.commit()
            return None
        return AiCache(model=row["ai_model"], cached_at=row["ai_cached_at"])

    def set_ai_cache(self, image_id: int, model: str) -> None:
        self._conn.execute(
            "UPDATE images SET ai_model = ?, ai_cached_at = ? WHERE id = ?",
            (model, format_timestamp(self._clock()), image_id),
        )
        self._conn.commit()

    def clear_ai_caches(self) -> int:
        """Drop AI cache metadata from every image. Returns rows touched."""
        cur = self._conn.execute(
            "UPDATE images SET ai_model = NULL, ai_cached_at = NULL WHERE ai_model IS NOT NULL"
        )
        self._conn.commit()
        return cur.rowcount


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_image(row: sqlite3.Row) -> CanonicalImage:
    cache = None
    if row["ai_model"] and row["ai_cached_at"]:
        cache = AiCache(model=row["ai_model"], cached_at=row["ai_cached_at"])
    return CanonicalImage(
        id=row["id"],
        url=row["url"],
        parent_id=row["parent_id"],
        title=row["title"],
        alt_text=row["alt_text"],
        featured=bool(row["featured"]),
        ai_cache=cache,
    )
