"""Domain models for the smartalt storage layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

DOCUMENT_KINDS: tuple[str, ...] = ("post", "page", "product")


def format_timestamp(epoch: float) -> str:
    """Render a UNIX timestamp as a sortable UTC string."""
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str) -> float:
    """Inverse of :func:`format_timestamp`."""
    return datetime.strptime(text, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc).timestamp()


@dataclass(frozen=True)
class DocumentContext:
    """Page metadata used for heuristic text and AI prompts."""

    title: str = ""
    excerpt: str = ""
    content: str = ""


@dataclass
class Document:
    id: int
    title: str = ""
    excerpt: str = ""
    content: str = ""
    kind: str = "post"
    created_at: str | None = None

    @property
    def context(self) -> DocumentContext:
        return DocumentContext(title=self.title, excerpt=self.excerpt, content=self.content)


@dataclass(frozen=True)
class AiCache:
    model: str
    cached_at: str


@dataclass
class CanonicalImage:
    """A stored image resource, independent of any one document.

    ``alt_text`` is None when no alt has ever been stored (or it was deleted
    by a revert) and ``""`` when an empty value is stored.
    """

    id: int
    url: str
    parent_id: int | None = None
    title: str = ""
    alt_text: str | None = None
    featured: bool = False
    ai_cache: AiCache | None = None

    @property
    def stored_alt_text(self) -> str:
        return self.alt_text or ""

    @property
    def has_alt(self) -> bool:
        return bool(self.alt_text)
