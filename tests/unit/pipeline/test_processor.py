"""Tests for the render-path and save-hook processor."""

from __future__ import annotations

import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from smartalt.config import AiCfg, LoggingCfg, SmartAltConfig
from smartalt.db.models import Document
from smartalt.errors import DocumentNotFoundError, ImageNotFoundError
from smartalt.pipeline.decision import SKIP_HAS_ALT
from smartalt.pipeline.processor import append_script, build_processor, client_script

PAGE = (
    "<html><head><title>Garden Guide</title></head><body><article>{body}</article>"
    "<footer>Garden Co. All rights reserved.</footer></body></html>"
)
ENDPOINT = "https://ai.test/alt"


def _http_response(payload, status=200):
    resp = MagicMock()
    resp.status = status
    resp.read.return_value = json.dumps(payload).encode("utf-8")
    return resp


def _http_error(status=500):
    return urllib.error.HTTPError(ENDPOINT, status, "Server Error", {}, io.BytesIO(b"boom"))


@pytest.fixture
def make_processor(tmp_db, fake_clock):
    def _make(log_level="info", ai=None, **overrides):
        cfg = SmartAltConfig(
            ai=ai or AiCfg(endpoint=ENDPOINT),
            logging=LoggingCfg(level=log_level),
            **overrides,
        )
        return build_processor(cfg, tmp_db, clock=fake_clock, sleep=lambda seconds: None)

    return _make


# ------------------------------------------------------------------
# inject_into_buffer
# ------------------------------------------------------------------

def test_heuristic_alt_injected_from_page_title(make_processor):
    html = PAGE.format(body='<img src="a.jpg">')
    out = make_processor().inject_into_buffer(html)
    assert out == html.replace('<img src="a.jpg">', '<img src="a.jpg" alt="Garden Guide">')


def test_existing_alt_left_identical(make_processor):
    html = PAGE.format(body='<img src="a.jpg" alt="existing">')
    assert make_processor().inject_into_buffer(html) == html


def test_injection_is_idempotent(make_processor):
    processor = make_processor()
    html = PAGE.format(
        body='<img src="rose.jpg"><img src="tulip.jpg" alt=""><img src="lily.jpg" alt="Lily"><img src=x.png />'
    )
    once = processor.inject_into_buffer(html)
    assert once != html
    assert processor.inject_into_buffer(once) == once


def test_commented_duplicate_tag_left_alone(make_processor):
    processor = make_processor()
    html = PAGE.format(body='<!-- old layout: <img src="a.jpg"> --><img src="a.jpg">')
    once = processor.inject_into_buffer(html)
    assert once == PAGE.format(body='<!-- old layout: <img src="a.jpg"> --><img src="a.jpg" alt="Garden Guide">')
    assert processor.inject_into_buffer(once) == once


def test_images_with_alt_logged_as_skipped_at_debug(make_processor):
    html = PAGE.format(body='<img src="a.jpg"><img src="b.jpg" alt="Kept">')
    make_processor(log_level="info").inject_into_buffer(html)
    processor = make_processor(log_level="debug")
    assert processor.changelog.list(status="skipped") == []

    processor.inject_into_buffer(html)

    skipped = processor.changelog.list(status="skipped")
    assert len(skipped) == 1
    assert skipped[0].old_alt == "Kept"
    assert skipped[0].severity == "debug"
    assert skipped[0].message == SKIP_HAS_ALT


def test_short_buffer_unchanged(make_processor):
    html = '<img src="a.jpg">'
    assert make_processor().inject_into_buffer(html) == html


def test_disabled_or_client_script_mode_unchanged(make_processor):
    html = PAGE.format(body='<img src="a.jpg">')
    assert make_processor(enabled=False).inject_into_buffer(html) == html
    assert make_processor(injection_method="client_script").inject_into_buffer(html) == html


def test_context_from_stored_document(make_processor):
    processor = make_processor()
    processor.storage.add_document(Document(id=7, title="Stored Title"))
    out = processor.inject_into_buffer(PAGE.format(body='<img src="a.jpg">'), document_id=7)
    assert 'alt="Stored Title"' in out


def test_stored_canonical_alt_reused(make_processor):
    processor = make_processor()
    processor.storage.add_image("https://x.test/rose.jpg", alt_text="Canonical rose")
    out = processor.inject_into_buffer(PAGE.format(body='<img src="https://x.test/rose.jpg">'))
    assert 'alt="Canonical rose"' in out


def test_unexpected_error_returns_original(make_processor):
    processor = make_processor()
    html = PAGE.format(body='<img src="a.jpg">')
    with patch.object(processor.storage, "find_image_by_url", side_effect=RuntimeError("boom")):
        assert processor.inject_into_buffer(html) == html


def test_ai_batch_single_call(make_processor):
    processor = make_processor(alt_source="ai", ai=AiCfg(endpoint=ENDPOINT, key="secret"))
    html = PAGE.format(body='<img src="a.jpg"><img src="b.jpg">')
    reply = {"alts": {"a.jpg": "A red rose", "b.jpg": "A <b>yellow</b> tulip"}}

    with patch("urllib.request.urlopen", return_value=_http_response(reply)) as urlopen:
        out = processor.inject_into_buffer(html)

    assert urlopen.call_count == 1
    request = urlopen.call_args[0][0]
    assert request.get_header("Authorization") == "Bearer secret"
    assert "Garden Guide" in request.data.decode("utf-8")
    assert '<img src="a.jpg" alt="A red rose">' in out
    assert '<img src="b.jpg" alt="A yellow tulip">' in out
    assert processor.client.breaker.failures == 0


def test_ai_http_500_falls_back_to_heuristic(make_processor):
    processor = make_processor(alt_source="ai")
    html = PAGE.format(body='<img src="a.jpg">')

    with patch("urllib.request.urlopen", side_effect=_http_error(500)) as urlopen:
        out = processor.inject_into_buffer(html)

    assert urlopen.call_count == 1
    assert 'alt="Garden Guide"' in out
    assert processor.client.breaker.failures == 1
    (entry,) = processor.changelog.list(status="error")
    assert entry.source == "ai-fallback"
    assert entry.severity == "error"
    assert "500" in entry.message


def test_open_breaker_skips_network(make_processor):
    processor = make_processor(alt_source="ai")
    html = PAGE.format(body='<img src="a.jpg">')

    with patch("urllib.request.urlopen", side_effect=_http_error(503)) as urlopen:
        for _ in range(3):
            processor.inject_into_buffer(html)
        assert urlopen.call_count == 3
        out = processor.inject_into_buffer(html)
        assert urlopen.call_count == 3

    assert 'alt="Garden Guide"' in out
    opened = [e for e in processor.changelog.list(source="system") if "circuit breaker" in (e.message or "")]
    assert len(opened) == 1


def test_page_script_and_client_script(make_processor):
    processor = make_processor(injection_method="client_script")
    script = processor.page_script(PAGE.format(body='<img src="a.jpg">'))
    assert script.startswith("<script>")
    assert '"a.jpg": "Garden Guide"' in script


def test_client_script_escapes_closing_tag():
    script = client_script({"a.jpg": "x</script><b>"})
    assert script.count("</script>") == 1
    assert "<\\/script>" in script


def test_append_script_goes_before_closing_body():
    assert append_script("<html><body><p>x</p></BODY></html>", "<script></script>") == (
        "<html><body><p>x</p><script></script></BODY></html>"
    )
    assert append_script("<p>fragment</p>", "<script></script>") == "<p>fragment</p><script></script>"
    assert append_script("<body></body>", "") == "<body></body>"


# ------------------------------------------------------------------
# process_document_save
# ------------------------------------------------------------------

def _seed_post(processor):
    repo = processor.storage
    repo.add_document(Document(
        id=1,
        title="Garden Guide",
        content='<p><img src="https://x.test/up/rose-300x200.jpg"><img src="https://x.test/other.jpg"></p>',
    ))
    tulip = repo.add_image("https://x.test/up/tulip.jpg", parent_id=1, alt_text="Tulip", featured=True)
    rose = repo.add_image("https://x.test/up/rose.jpg", parent_id=1)
    return tulip, rose


def test_document_save_writes_missing_alts(make_processor):
    processor = make_processor()
    tulip, rose = _seed_post(processor)

    summary = processor.process_document_save(1)

    assert (summary.images, summary.updated, summary.skipped, summary.errors) == (3, 1, 2, 0)
    assert processor.storage.get_image_alt_text(rose) == "Garden Guide - Rose (Image 2)"
    assert processor.storage.get_image_alt_text(tulip) == "Tulip"
    (entry,) = processor.changelog.list(image_id=rose, status="success")
    assert (entry.old_alt, entry.source, entry.document_id) == ("", "heuristic", 1)


def test_document_save_dedup_window(make_processor, fake_clock):
    processor = make_processor()
    _, rose = _seed_post(processor)
    processor.process_document_save(1)
    processor.storage.delete_image_alt_text(rose)

    assert processor.process_document_save(1).ignored == "duplicate save"
    assert processor.storage.get_image_alt_text(rose) == ""

    fake_clock.advance(2)
    assert processor.process_document_save(1).updated == 1


def test_document_save_reentry_ignored(make_processor):
    processor = make_processor()
    _seed_post(processor)
    nested = []
    original = processor.storage.set_image_alt_text

    def _write_and_fire_hook(image_id, text, force=False):
        nested.append(processor.process_document_save(1))
        return original(image_id, text, force)

    with patch.object(processor.storage, "set_image_alt_text", side_effect=_write_and_fire_hook):
        processor.process_document_save(1)

    assert [s.ignored for s in nested] == ["already in progress"]


def test_document_save_unknown_document(make_processor):
    with pytest.raises(DocumentNotFoundError):
        make_processor().process_document_save(404)


def test_document_save_force_overwrites(make_processor):
    processor = make_processor()
    tulip, _ = _seed_post(processor)
    summary = processor.process_document_save(1, force_update=True)
    assert summary.updated == 2
    assert processor.storage.get_image_alt_text(tulip).startswith("Garden Guide")


def test_document_save_ai_sets_cache_and_force_respects_it(make_processor, fake_clock):
    processor = make_processor(alt_source="ai")
    _, rose = _seed_post(processor)
    reply = {"alts": {"https://x.test/up/rose.jpg": "A pink rose in bloom"}}

    with patch("urllib.request.urlopen", return_value=_http_response(reply)):
        processor.process_document_save(1)

    assert processor.storage.get_image_alt_text(rose) == "A pink rose in bloom"
    assert processor.storage.get_ai_cache(rose, 90).model == "generic_http"

    fake_clock.advance(2)
    with patch("urllib.request.urlopen", return_value=_http_response({"alts": {}})) as urlopen:
        summary = processor.process_document_save(1, force_update=True)
    sent = json.loads(urlopen.call_args[0][0].data.decode("utf-8"))
    assert "rose.jpg" not in json.dumps(sent)
    assert processor.storage.get_image_alt_text(rose) == "A pink rose in bloom"
    assert summary.skipped >= 1


def test_document_save_disabled(make_processor):
    processor = make_processor(enabled=False)
    _seed_post(processor)
    assert processor.process_document_save(1).ignored == "disabled"


# ------------------------------------------------------------------
# Single images
# ------------------------------------------------------------------

def test_process_attachment(make_processor):
    processor = make_processor()
    _, rose = _seed_post(processor)
    loose = processor.storage.add_image("https://x.test/loose.jpg")

    decision = processor.process_attachment(rose)
    assert decision.status == "success"
    assert processor.storage.get_image_alt_text(rose).startswith("Garden Guide")
    assert processor.process_attachment(rose) is None
    assert processor.process_attachment(loose) is None


def test_process_image_without_parent_uses_image_title(make_processor):
    processor = make_processor()
    loose = processor.storage.add_image("https://x.test/loose.jpg", title="Company logo")
    assert processor.process_image(loose).text == "Company logo"


def test_process_image_unknown(make_processor):
    with pytest.raises(ImageNotFoundError):
        make_processor().process_image(404)


def test_preview_image_never_writes(make_processor):
    processor = make_processor()
    _, rose = _seed_post(processor)
    assert processor.preview_image(rose) == ("", "Garden Guide - Rose")
    assert processor.storage.get_image_alt_text(rose) == ""
    assert make_processor(alt_source="ai").preview_image(rose) == ("", "(AI generated)")
