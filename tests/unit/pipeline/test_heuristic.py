"""Tests for heuristic alt text."""

from __future__ import annotations

from smartalt.db.models import DocumentContext
from smartalt.pipeline.heuristic import base_text, heuristic_alt

GUIDE = DocumentContext(title="Garden Guide")
URL = "https://x.test/uploads/red-rose_bush-300x200.jpg"


def test_single_image_uses_title():
    assert heuristic_alt(GUIDE, URL, 0, 1, 125) == "Garden Guide"


def test_excerpt_preferred_over_title():
    ctx = DocumentContext(title="Garden Guide", excerpt="Growing <b>roses</b> at home")
    assert base_text(ctx, 125) == "Growing roses at home"


def test_two_images_append_filename():
    assert heuristic_alt(GUIDE, URL, 1, 2, 125) == "Garden Guide - Red Rose Bush"


def test_more_than_two_images_append_position():
    assert heuristic_alt(GUIDE, URL, 2, 3, 125) == "Garden Guide - Red Rose Bush (Image 3)"


def test_filename_skipped_when_it_does_not_fit():
    ctx = DocumentContext(title="A" * 45)
    assert heuristic_alt(ctx, URL, 0, 2, 50) == "A" * 45


def test_position_needs_headroom():
    ctx = DocumentContext(title="Twelve chars" + " long title words here")
    text = heuristic_alt(ctx, "https://x.test/z.jpg", 0, 3, 50)
    assert "(Image" not in text
    assert len(text) <= 50


def test_filename_already_in_text_not_repeated():
    ctx = DocumentContext(title="Red Rose Bush care")
    assert heuristic_alt(ctx, URL, 0, 2, 125) == "Red Rose Bush care"


def test_distinct_text_per_image():
    urls = ["https://x.test/a-tulip.jpg", "https://x.test/b-daisy.jpg", "https://x.test/c-lily.jpg"]
    texts = {heuristic_alt(GUIDE, u, i, 3, 125) for i, u in enumerate(urls)}
    assert len(texts) == 3


def test_no_context_gives_empty():
    assert heuristic_alt(DocumentContext(), URL, 0, 1, 125) == ""
