"""Helpers for reasoning about image URLs and file names."""

from __future__ import annotations

import posixpath
import re
import urllib.parse

# WordPress-style resized variants: photo-300x200.jpg, photo-scaled.jpg
_SIZE_SUFFIX_RE = re.compile(r"-(?:\d+x\d+|scaled)(?=\.[A-Za-z0-9]+$)", re.IGNORECASE)


def filename_from_url(url: str) -> str:
    """Return the last path segment of *url* without query or fragment."""
    path = urllib.parse.urlsplit(url.strip()).path
    return urllib.parse.unquote(posixpath.basename(path))


def canonical_filename(url: str) -> str:
    """File name with any resize suffix removed, lower-cased for comparison."""
    return _SIZE_SUFFIX_RE.sub("", filename_from_url(url)).lower()


def humanize_filename(url: str) -> str:
    """Turn ``/uploads/red-rose_bush-300x200.jpg`` into ``Red Rose Bush``."""
    name = _SIZE_SUFFIX_RE.sub("", filename_from_url(url))
    stem, _ext = posixpath.splitext(name)
    words = re.sub(r"[-_]+", " ", stem).split()
    return " ".join(words).title()
