"""Reading alt text out of a provider's JSON reply."""

from __future__ import annotations

import json
import re
from typing import Any, Sequence

from smartalt.html.extractor import ImageReference
from smartalt.pipeline.sanitize import sanitize_alt_text

_MISSING = object()
_PATH_TOKEN_RE = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


def extract_path(data: Any, path: str) -> Any:
    """Follow a dot path such as ``data.result.text`` or ``choices[0].message.content``.

    Numeric segments (``items.0`` or ``items[0]``) index into lists.

    Returns:
        The value found, or the module's ``_MISSING`` sentinel.
    """
    current = data
    for name, index in _PATH_TOKEN_RE.findall(path):
        key = index if index else name
        if isinstance(current, dict):
            if key not in current:
                return _MISSING
            current = current[key]
        elif isinstance(current, list) and key.isdigit():
            i = int(key)
            if i >= len(current):
                return _MISSING
            current = current[i]
        else:
            return _MISSING
    return current


def _decode_embedded(value: Any) -> Any:
    """Parse strings that carry a JSON object/array (chat-style replies)."""
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("```"):
            text = text.strip("`")
            text = text[text.find("\n") + 1:] if "\n" in text else text
        if text[:1] in ("{", "["):
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return value
    return value


def extract_collection(data: Any, path: str) -> dict | list | None:
    """The alt-text collection at *path*, else the whole reply if it is one."""
    value = _decode_embedded(extract_path(data, path))
    if isinstance(value, (dict, list)):
        return value
    if isinstance(data, (dict, list)):
        return data
    return None


def map_alts(
    images: Sequence[ImageReference],
    collection: dict | list | None,
    max_length: int,
) -> dict[str, str]:
    """Pair each requested image with its text.

    Lookup order: the image URL as a key, then the image's index in the
    request. Non-string or empty values are dropped.
    """
    alts: dict[str, str] = {}
    if collection is None:
        return alts
    for i, image in enumerate(images):
        value: Any = None
        if isinstance(collection, dict):
            if image.source_url in collection:
                value = collection[image.source_url]
            elif str(i) in collection:
                value = collection[str(i)]
        elif i < len(collection):
            value = collection[i]
        if not isinstance(value, str):
            continue
        text = sanitize_alt_text(value, max_length)
        if text:
            alts[image.source_url] = text
    return alts


def single_alt(
    image: ImageReference, data: Any, path: str, max_length: int
) -> dict[str, str]:
    """Like :func:`map_alts` for one image, also accepting a plain string at *path*."""
    value = extract_path(data, path)
    decoded = _decode_embedded(value)
    if isinstance(decoded, str):
        text = sanitize_alt_text(decoded, max_length)
        return {image.source_url: text} if text else {}
    return map_alts([image], extract_collection(data, path), max_length)
