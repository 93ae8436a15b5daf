"""Derive page context (title, excerpt, body text) from a rendered page."""

from __future__ import annotations

import warnings

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

from smartalt.db.models import DocumentContext

warnings.filterwarnings("ignore", category=MarkupResemblesLocatorWarning)

_MAX_CONTENT_CHARS = 5_000


def page_context_from_html(doc: str) -> DocumentContext:
    """Read ``<title>``, the meta/OG description and visible text from *doc*.

    Used on the render path when the caller has no stored document to
    describe the page.
    """
    soup = BeautifulSoup(doc, "html.parser")

    title = ""
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if soup.title and soup.title.string:
        title = soup.title.string.strip()
    elif og_title and og_title.get("content"):
        title = str(og_title["content"]).strip()
    else:
        h1 = soup.find("h1")
        if h1:
            title = h1.get_text(" ", strip=True)

    excerpt = ""
    for attrs in ({"name": "description"}, {"property": "og:description"}):
        meta = soup.find("meta", attrs=attrs)
        if meta and meta.get("content"):
            excerpt = str(meta["content"]).strip()
            break

    for tag in soup.find_all(["script", "style", "nav", "footer", "head", "noscript"]):
        tag.decompose()
    content = " ".join(soup.get_text(" ", strip=True).split())

    return DocumentContext(title=title, excerpt=excerpt, content=content[:_MAX_CONTENT_CHARS])
