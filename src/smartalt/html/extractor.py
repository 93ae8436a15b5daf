"""Image extraction from arbitrary HTML.

A small forgiving tokenizer walks the document once, skipping comments and
raw-text elements (script, style, textarea), and records every ``<img>``
start tag together with its exact source text. Nothing is re-serialised:
the re-injector relies on ``raw`` being a literal substring of the input.

Malformed markup is tolerated per element. An ``<img`` with no closing
``>`` before end of input is dropped; a tag whose attributes cannot be
read is skipped without affecting its siblings.
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from typing import Iterator

logger = logging.getLogger(__name__)

# Things that matter while scanning: comments, raw-text elements, images.
_TOKEN_RE = re.compile(r"<!--|<(script|style|textarea)\b|<img\b", re.IGNORECASE)

# Attribute grammar mirrors the tolerant pattern used by the stdlib
# html.parser: names run up to whitespace, '/', '=' or '>', values may be
# double-quoted, single-quoted or bare.
ATTR_RE = re.compile(
    r"""
    (?P<name>[^\s/>"'=][^\s/>"'=]*)
    (?:\s*=\s*
        (?P<value>"[^"]*"|'[^']*'|[^\s"'>]+)?
    )?
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class ImageReference:
    """One occurrence of an image in a document.

    Attributes:
        source_url: ``src`` as written in the markup (entities decoded).
        current_alt: Value of the alt attribute, ``""`` if empty or absent.
        has_alt_attribute: True when an alt attribute is present at all.
        raw: The exact ``<img ...>`` text from the document.
        position: 0-based ordinal among extracted images.
        start: Offset of ``raw`` in the scanned document.
    """

    source_url: str
    current_alt: str
    has_alt_attribute: bool
    raw: str
    position: int
    start: int = 0

    @property
    def needs_alt(self) -> bool:
        return not self.current_alt.strip()


@dataclass(frozen=True)
class Attribute:
    name: str
    value: str | None
    start: int
    end: int


def iter_attributes(tag: str) -> Iterator[Attribute]:
    """Yield the attributes of a start tag with their spans inside *tag*.

    *tag* is the full ``<img ...>`` text; the element name and the closing
    ``>`` / ``/>`` are not reported.
    """
    name_match = re.match(r"<[A-Za-z][^\s/>]*", tag)
    pos = name_match.end() if name_match else 1
    end = len(tag) - 1 if tag.endswith(">") else len(tag)
    while pos < end:
        m = ATTR_RE.search(tag, pos, end)
        if m is None:
            break
        raw_value = m.group("value")
        if raw_value is not None and raw_value[:1] in ("'", '"'):
            raw_value = raw_value[1:-1]
        value = html.unescape(raw_value) if raw_value is not None else None
        yield Attribute(m.group("name").lower(), value, m.start(), m.end())
        pos = max(m.end(), pos + 1)


def _find_tag_end(doc: str, start: int) -> int:
    """Index just past the ``>`` closing the tag that opens at *start*, or -1.

    Quoted attribute values may contain ``>``. When a quote is never closed
    the first plain ``>`` after *start* is used instead.
    """
    quote: str | None = None
    i = start + 1
    n = len(doc)
    while i < n:
        c = doc[i]
        if quote:
            if c == quote:
                quote = None
        elif c in "\"'" and doc[i - 1] in "= \t\n\r\f":
            quote = c
        elif c == ">":
            return i + 1
        i += 1
    fallback = doc.find(">", start)
    return fallback + 1 if fallback != -1 else -1


def _skip_raw_text(doc: str, element: str, pos: int) -> int:
    closing = re.compile(rf"</{element}\s*>", re.IGNORECASE)
    m = closing.search(doc, pos)
    return m.end() if m else len(doc)


def parse_image_tag(raw: str, position: int, start: int = 0) -> ImageReference | None:
    """Build an ImageReference from one ``<img>`` tag, or None if it has no src."""
    src: str | None = None
    alt: str | None = None
    has_alt = False
    for attr in iter_attributes(raw):
        if attr.name == "src" and src is None:
            src = attr.value
        elif attr.name == "alt" and not has_alt:
            has_alt = True
            alt = attr.value
    if not src or not src.strip():
        return None
    return ImageReference(
        source_url=src.strip(),
        current_alt=alt or "",
        has_alt_attribute=has_alt,
        raw=raw,
        position=position,
        start=start,
    )


def extract_images(doc: str) -> list[ImageReference]:
    """Return every ``<img>`` with a ``src`` in *doc*, in document order.

    Never raises on malformed input; the worst case is an empty list.
    """
    images: list[ImageReference] = []
    if not doc:
        return images

    pos = 0
    while True:
        m = _TOKEN_RE.search(doc, pos)
        if m is None:
            break
        token = m.group(0)
        if token == "<!--":
            end = doc.find("-->", m.end())
            pos = end + 3 if end != -1 else len(doc)
            continue
        if m.group(1):
            open_end = _find_tag_end(doc, m.start())
            if open_end == -1:
                break
            pos = _skip_raw_text(doc, m.group(1), open_end)
            continue

        end = _find_tag_end(doc, m.start())
        if end == -1:
            logger.debug("Unterminated <img> at offset %d ignored", m.start())
            break
        raw = doc[m.start():end]
        try:
            ref = parse_image_tag(raw, position=len(images), start=m.start())
        except (ValueError, IndexError) as exc:
            logger.debug("Skipping unreadable <img> at offset %d: %s", m.start(), exc)
            ref = None
        if ref is not None:
            images.append(ref)
        pos = end

    return images
