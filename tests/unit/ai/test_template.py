"""Tests for literal placeholder substitution."""

from __future__ import annotations

import json

from smartalt.ai.template import CONTENT_PREFIX_CHARS, placeholder_pairs, render_template
from smartalt.config import DEFAULT_REQUEST_TEMPLATE
from smartalt.db.models import DocumentContext
from smartalt.html.extractor import ImageReference


def _ref(url, position=0):
    return ImageReference(url, "", False, f'<img src="{url}">', position)


def test_single_pass_no_recursive_expansion():
    out = render_template("{a} {b}", [("a", "{b}"), ("b", "B")])
    assert out == "{b} B"


def test_unknown_placeholders_kept():
    assert render_template("{nope} {a}", [("a", "1")]) == "{nope} 1"


def test_pairs_order_and_values():
    images = [_ref("https://x.test/up/red-rose.jpg?w=2"), _ref("b.png", 1)]
    ctx = DocumentContext(title='Say "hi"', excerpt="Short", content="<p>Body text</p>")
    pairs = placeholder_pairs(images, ctx, 90)
    names = [name for name, _ in pairs]
    assert names[:6] == ["image_count", "post_title", "post_excerpt", "post_content", "images_json", "max_length"]
    values = dict(pairs)
    assert values["image_count"] == "2"
    assert values["post_title"] == 'Say \\"hi\\"'
    assert values["post_content"] == "Body text"
    assert json.loads(values["images_json"]) == [
        {"url": "https://x.test/up/red-rose.jpg?w=2", "filename": "red-rose.jpg", "position": 0},
        {"url": "b.png", "filename": "b.png", "position": 1},
    ]
    assert values["image_filename"] == "red-rose.jpg"


def test_content_prefix_is_bounded():
    ctx = DocumentContext(content="word " * 1000)
    values = dict(placeholder_pairs([_ref("a.jpg")], ctx, 125))
    assert len(values["post_content"]) <= CONTENT_PREFIX_CHARS


def test_default_template_renders_valid_json():
    ctx = DocumentContext(title='Quotes " and \\ slashes', excerpt="Line\nbreak")
    body = render_template(DEFAULT_REQUEST_TEMPLATE, placeholder_pairs([_ref("a.jpg")], ctx, 125))
    data = json.loads(body)
    assert data["image_count"] == 1
    assert data["page"]["title"] == 'Quotes " and \\ slashes'
    assert data["images"][0]["url"] == "a.jpg"


def test_empty_batch_single_image_placeholders_empty():
    values = dict(placeholder_pairs([], DocumentContext(), 125))
    assert values["image_url"] == ""
    assert values["image_position"] == ""
