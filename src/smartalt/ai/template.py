"""Literal ``{placeholder}`` substitution for AI request bodies.

Not a template engine: every ``{name}`` whose name is known is replaced in a
single left-to-right pass, so a substituted value that itself contains
``{post_title}`` is never expanded again. Unknown ``{names}`` are kept.
"""

from __future__ import annotations

import json
import re
from typing import Sequence

from smartalt.db.models import DocumentContext
from smartalt.html.extractor import ImageReference
from smartalt.pipeline.sanitize import strip_markup
from smartalt.urls import filename_from_url

CONTENT_PREFIX_CHARS = 1000

_PLACEHOLDER_RE = re.compile(r"\{([a-z_]+)\}")


def json_fragment(text: str) -> str:
    """*text* escaped for use inside a JSON string literal (no quotes added)."""
    return json.dumps(text, ensure_ascii=False)[1:-1]


def render_template(template: str, pairs: Sequence[tuple[str, str]]) -> str:
    """Replace each ``{name}`` in *template* using *pairs* in one pass."""
    lookup = dict(pairs)

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        return lookup[name] if name in lookup else match.group(0)

    return _PLACEHOLDER_RE.sub(_sub, template)


def images_payload(images: Sequence[ImageReference]) -> list[dict]:
    return [
        {"url": img.source_url, "filename": filename_from_url(img.source_url), "position": img.position}
        for img in images
    ]


def placeholder_pairs(
    images: Sequence[ImageReference],
    context: DocumentContext,
    max_length: int,
) -> list[tuple[str, str]]:
    """Ordered (placeholder, value) pairs for a request covering *images*.

    The single-image placeholders describe the first image and are empty for
    an empty batch.
    """
    content = " ".join(strip_markup(context.content or "").split())[:CONTENT_PREFIX_CHARS]
    first = images[0] if images else None
    return [
        ("image_count", str(len(images))),
        ("post_title", json_fragment(context.title or "")),
        ("post_excerpt", json_fragment(context.excerpt or "")),
        ("post_content", json_fragment(content)),
        ("images_json", json.dumps(images_payload(images), ensure_ascii=False)),
        ("max_length", str(max_length)),
        ("image_url", json_fragment(first.source_url) if first else ""),
        ("image_filename", json_fragment(filename_from_url(first.source_url)) if first else ""),
        ("image_position", str(first.position) if first else ""),
    ]
