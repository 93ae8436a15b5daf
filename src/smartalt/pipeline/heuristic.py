"""Heuristic alt text: page excerpt or title, varied per image.

For pages with several images the base text is made distinct by appending
the humanised file name (``" - Red Rose Bush"``) when it fits, and, on
pages with more than two images, the image's ordinal (``" (Image 3)"``)
while at least ``_POSITION_HEADROOM`` characters remain.
"""

from __future__ import annotations

from smartalt.db.models import DocumentContext
from smartalt.pipeline.sanitize import sanitize_alt_text
from smartalt.urls import humanize_filename

_POSITION_HEADROOM = 15


def base_text(context: DocumentContext, max_length: int) -> str:
    """Excerpt if the page has one, otherwise its title."""
    excerpt = sanitize_alt_text(context.excerpt, max_length)
    if excerpt:
        return excerpt
    return sanitize_alt_text(context.title, max_length)


def heuristic_alt(
    context: DocumentContext,
    source_url: str,
    position: int,
    image_count: int,
    max_length: int,
) -> str:
    """Return heuristic alt text for one image, or "" when nothing is known.

    Args:
        context: Page title / excerpt.
        source_url: Image URL, used for the file-name variation.
        position: 0-based index of the image on the page.
        image_count: Number of images on the page.
        max_length: Output length bound.
    """
    text = base_text(context, max_length)
    if not text:
        return ""

    if image_count > 1:
        filename = humanize_filename(source_url)
        if filename and filename.lower() not in text.lower():
            candidate = f"{text} - {filename}"
            if len(candidate) <= max_length:
                text = candidate
        if image_count > 2 and len(text) < max_length - _POSITION_HEADROOM:
            text = f"{text} (Image {position + 1})"

    return sanitize_alt_text(text, max_length)
