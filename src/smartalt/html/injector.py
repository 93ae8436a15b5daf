"""Write alt attributes back into HTML without touching anything else.

Each image tag is rewritten at the offset the extractor recorded for it, so
a copy of the same markup inside a comment or script is never touched and
repeated identical tags are each rewritten once. A tag that no longer sits
at its offset is skipped silently.
"""

from __future__ import annotations

import html
import logging
from typing import Iterable, Mapping

from smartalt.html.extractor import ImageReference, iter_attributes

logger = logging.getLogger(__name__)


def escape_attribute(text: str) -> str:
    """HTML-attribute escape: ``& < > " '``."""
    return html.escape(text, quote=True)


def rewrite_tag(tag: str, alt: str, has_alt_attribute: bool) -> str:
    """Return *tag* with its alt set to *alt* (escaped).

    A missing attribute is inserted just before ``>`` or ``/>``; an existing
    one (quoted, single-quoted, bare or valueless) is replaced in place.
    """
    attribute = f'alt="{escape_attribute(alt)}"'

    if has_alt_attribute:
        for attr in iter_attributes(tag):
            if attr.name == "alt":
                return tag[: attr.start] + attribute + _keep_gap(tag, attr.end)

    if tag.endswith("/>"):
        body, closing = tag[:-2], "/>"
    elif tag.endswith(">"):
        body, closing = tag[:-1], ">"
    else:
        body, closing = tag, ""
    stripped = body.rstrip()
    gap = body[len(stripped):]
    if closing == "/>" and not gap:
        # <img src=a/> would make the slash part of an unquoted value.
        gap = " "
    return f"{stripped} {attribute}{gap}{closing}"


def _keep_gap(tag: str, end: int) -> str:
    """Remainder of *tag* after an attribute, keeping one separating space."""
    rest = tag[end:]
    if rest and not rest[0].isspace() and rest[0] not in "/>":
        return " " + rest
    return rest


def inject_alts(
    doc: str,
    images: Iterable[ImageReference],
    alts: Mapping[str, str],
) -> str:
    """Return *doc* with alt text from *alts* (keyed by source URL) applied.

    *images* must come from ``extract_images(doc)``: each tag is rewritten at
    its recorded offset, shifted by the length change of earlier rewrites.
    Images without a non-empty entry in *alts* are left alone.
    """
    out = doc
    shift = 0
    for image in sorted(images, key=lambda i: i.start):
        alt = alts.get(image.source_url, "")
        if not alt:
            continue
        index = image.start + shift
        if not out.startswith(image.raw, index):
            logger.debug("Tag for %s not found at offset %d; skipped", image.source_url, image.start)
            continue
        replacement = rewrite_tag(image.raw, alt, image.has_alt_attribute)
        out = out[:index] + replacement + out[index + len(image.raw):]
        shift += len(replacement) - len(image.raw)
    return out
