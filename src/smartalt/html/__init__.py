"""HTML image extraction and alt re-injection."""

from smartalt.html.extractor import ImageReference, extract_images
from smartalt.html.injector import escape_attribute, inject_alts

__all__ = ["ImageReference", "extract_images", "escape_attribute", "inject_alts"]
