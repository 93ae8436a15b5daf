"""Alt-text sanitizer shared by heuristic and AI output."""

from __future__ import annotations

import re
import warnings

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

warnings.filterwarnings("ignore", category=MarkupResemblesLocatorWarning)

DEFAULT_MAX_LENGTH = 125

_WHITESPACE_RE = re.compile(r"\s+")


def strip_markup(text: str) -> str:
    """Remove tags and decode entities (one pass, like a browser would)."""
    if "<" not in text and "&" not in text:
        return text
    return BeautifulSoup(text, "html.parser").get_text()


def truncate_on_word(text: str, max_length: int) -> str:
    """Cut *text* to at most *max_length* characters without splitting a word.

    If the first word alone is longer than *max_length* it is hard-cut, since
    dropping it would leave nothing.
    """
    if len(text) <= max_length:
        return text
    cut = text[:max_length]
    if text[max_length].isspace():
        return cut.rstrip()
    boundary = cut.rfind(" ")
    if boundary <= 0:
        return cut
    return cut[:boundary].rstrip()


def sanitize_alt_text(text: str | None, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Strip markup, decode entities, collapse whitespace, trim and truncate.

    Args:
        text: Raw candidate alt text (may contain HTML).
        max_length: Hard upper bound on the result length.

    Returns:
        Clean alt text, possibly empty.
    """
    if not text:
        return ""
    clean = strip_markup(str(text))
    clean = _WHITESPACE_RE.sub(" ", clean).strip()
    return truncate_on_word(clean, max_length)
