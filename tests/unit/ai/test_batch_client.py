"""Tests for the template-driven AI HTTP client."""

from __future__ import annotations

import http.client
import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from smartalt.ai.breaker import CircuitBreaker
from smartalt.ai.client import AiBatchClient, AltsGenerated, CircuitOpen, ProviderFailure
from smartalt.config import AiCfg
from smartalt.db.models import DocumentContext
from smartalt.errors import ConfigError
from smartalt.html.extractor import ImageReference

ENDPOINT = "https://ai.test/alt"
CTX = DocumentContext(title="Garden Guide", excerpt="Roses", content="<p>All about roses</p>")


def _ref(url, position=0):
    return ImageReference(url, "", False, f'<img src="{url}">', position)


def _response(payload, status=200):
    resp = MagicMock()
    resp.status = status
    body = payload if isinstance(payload, str) else json.dumps(payload)
    resp.read.return_value = body.encode("utf-8")
    return resp


def _http_error(status):
    return urllib.error.HTTPError(ENDPOINT, status, "err", {}, io.BytesIO(b"upstream down"))


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_client(transients, sleeps):
    def _make(**overrides):
        cfg = AiCfg(endpoint=ENDPOINT, **overrides)
        return AiBatchClient(cfg, CircuitBreaker(transients), 125, sleep=sleeps.append)

    return _make


def test_missing_endpoint_raises_before_io(transients):
    client = AiBatchClient(AiCfg(), CircuitBreaker(transients))
    with patch("urllib.request.urlopen") as urlopen:
        with pytest.raises(ConfigError):
            client.request_batch([_ref("a.jpg")], CTX)
    urlopen.assert_not_called()


def test_batch_success_maps_urls(make_client):
    client = make_client()
    images = [_ref("a.jpg"), _ref("b.jpg", 1)]
    reply = {"alts": {"b.jpg": "Tulip", "a.jpg": "Rose"}}
    with patch("urllib.request.urlopen", return_value=_response(reply)) as urlopen:
        outcome = client.request_batch(images, CTX)

    assert isinstance(outcome, AltsGenerated)
    assert outcome.alts == {"a.jpg": "Rose", "b.jpg": "Tulip"}
    assert outcome.model == "generic_http"
    request = urlopen.call_args[0][0]
    assert request.get_method() == "POST"
    assert urlopen.call_args.kwargs["timeout"] == 15.0
    sent = json.loads(request.data.decode("utf-8"))
    assert [i["url"] for i in sent["images"]] == ["a.jpg", "b.jpg"]
    assert sent["page"]["content"] == "All about roses"


def test_duplicate_urls_sent_once(make_client):
    images = [_ref("a.jpg"), _ref("a.jpg", 1)]
    with patch("urllib.request.urlopen", return_value=_response({"alts": ["Rose"]})) as urlopen:
        outcome = make_client().request_batch(images, CTX)
    sent = json.loads(urlopen.call_args[0][0].data.decode("utf-8"))
    assert sent["image_count"] == 1
    assert outcome.alts == {"a.jpg": "Rose"}


def test_http_error_is_one_failure_without_retry(make_client, sleeps):
    client = make_client()
    with patch("urllib.request.urlopen", side_effect=_http_error(500)) as urlopen:
        outcome = client.request_batch([_ref("a.jpg")], CTX)

    assert isinstance(outcome, ProviderFailure)
    assert outcome.status == 500
    assert "500" in outcome.reason
    assert outcome.alts == {}
    assert urlopen.call_count == 1
    assert sleeps == []
    assert client.breaker.failures == 1


def test_network_error_retried_once(make_client, sleeps):
    client = make_client()
    side_effect = [urllib.error.URLError("timed out"), _response({"alts": {"a.jpg": "Rose"}})]
    with patch("urllib.request.urlopen", side_effect=side_effect) as urlopen:
        outcome = client.request_batch([_ref("a.jpg")], CTX)

    assert outcome.alts == {"a.jpg": "Rose"}
    assert urlopen.call_count == 2
    assert sleeps == [1.0]
    assert client.breaker.failures == 0


def test_network_error_after_retry_is_failure(make_client):
    client = make_client()
    with patch("urllib.request.urlopen", side_effect=TimeoutError("slow")) as urlopen:
        outcome = client.request_batch([_ref("a.jpg")], CTX)
    assert isinstance(outcome, ProviderFailure)
    assert urlopen.call_count == 2
    assert client.breaker.failures == 1


def test_invalid_json_and_empty_mapping_are_failures(make_client):
    client = make_client()
    with patch("urllib.request.urlopen", return_value=_response("not json")):
        outcome = client.request_batch([_ref("a.jpg")], CTX)
    assert outcome.reason == "Invalid JSON response from AI API"

    with patch("urllib.request.urlopen", return_value=_response({"alts": {"other.jpg": "x"}})):
        outcome = client.request_batch([_ref("a.jpg")], CTX)
    assert outcome.reason == "No alt text in AI API response"
    assert client.breaker.failures == 2


def test_breaker_opens_and_skips_network(make_client):
    client = make_client()
    with patch("urllib.request.urlopen", side_effect=_http_error(503)) as urlopen:
        for _ in range(3):
            client.request_batch([_ref("a.jpg")], CTX)
        outcome = client.request_batch([_ref("a.jpg")], CTX)
    assert isinstance(outcome, CircuitOpen)
    assert urlopen.call_count == 3


def test_success_resets_failure_count(make_client):
    client = make_client()
    with patch("urllib.request.urlopen", side_effect=_http_error(500)):
        client.request_batch([_ref("a.jpg")], CTX)
        client.request_batch([_ref("a.jpg")], CTX)
    with patch("urllib.request.urlopen", return_value=_response({"alts": {"a.jpg": "Rose"}})):
        client.request_batch([_ref("a.jpg")], CTX)
    assert client.breaker.failures == 0


def test_get_sends_no_body(make_client):
    client = make_client(method="GET")
    with patch("urllib.request.urlopen", return_value=_response({"alts": ["Rose"]})) as urlopen:
        client.request_batch([_ref("a.jpg")], CTX)
    request = urlopen.call_args[0][0]
    assert request.get_method() == "GET"
    assert request.data is None


def test_headers_merge_and_bearer(make_client):
    client = make_client(key="secret", headers={"X-Team": "web", "Content-Type": "application/vnd+json"})
    headers = client.headers()
    assert headers["Content-Type"] == "application/vnd+json"
    assert headers["X-Team"] == "web"
    assert headers["Authorization"] == "Bearer secret"
    assert "Authorization" not in make_client().headers()


def test_generate_one_accepts_plain_string(make_client):
    client = make_client(response_path="data.text")
    with patch("urllib.request.urlopen", return_value=_response({"data": {"text": "A red rose"}})):
        outcome = client.generate_one(_ref("a.jpg"), CTX)
    assert outcome.alts == {"a.jpg": "A red rose"}


def test_generate_batch_returns_empty_on_failure(make_client):
    with patch("urllib.request.urlopen", side_effect=_http_error(500)):
        assert make_client().generate_batch([_ref("a.jpg")], CTX) == {}


def test_truncated_body_retried_then_counted_once_per_call(make_client, sleeps):
    client = make_client()
    truncated = _response("")
    truncated.read.side_effect = http.client.IncompleteRead(b'{"alts": [')
    with patch("urllib.request.urlopen", return_value=truncated) as urlopen:
        outcome = client.request_batch([_ref("a.jpg")], CTX)
        assert client.generate_batch([_ref("a.jpg")], CTX) == {}

    assert isinstance(outcome, ProviderFailure)
    assert "IncompleteRead" in outcome.reason
    assert urlopen.call_count == 4
    assert sleeps == [1.0, 1.0]
    assert client.breaker.failures == 2


def test_connection_reset_while_reading_is_failure(make_client):
    client = make_client()
    reset = _response("")
    reset.read.side_effect = ConnectionResetError("reset by peer")
    with patch("urllib.request.urlopen", return_value=reset):
        outcome = client.generate_one(_ref("a.jpg"), CTX)
    assert isinstance(outcome, ProviderFailure)
    assert client.breaker.failures == 1


def test_unusable_endpoint_raises_config_error(make_client, sleeps):
    client = make_client()
    with patch("urllib.request.urlopen", side_effect=http.client.InvalidURL("nonnumeric port: 'x'")) as urlopen:
        with pytest.raises(ConfigError, match="not usable"):
            client.request_batch([_ref("a.jpg")], CTX)
    assert urlopen.call_count == 1
    assert sleeps == []
    assert client.breaker.failures == 0


# ---------------------------------------------------------------------------
# test_connection
# ---------------------------------------------------------------------------


def test_connection_check_success_sends_sample_image(make_client):
    client = make_client()
    with patch("urllib.request.urlopen", return_value=_response({"ok": True})) as urlopen:
        check = client.test_connection()

    assert check.ok
    assert check.status == 200
    sent = json.loads(urlopen.call_args[0][0].data.decode("utf-8"))
    assert sent["images"][0]["url"] == "https://example.com/image.jpg"
    assert sent["page"]["title"] == "Test"


def test_connection_check_reports_failures_without_touching_breaker(make_client, sleeps):
    client = make_client()
    with patch("urllib.request.urlopen", side_effect=_http_error(401)):
        denied = client.test_connection()
    with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("refused")) as urlopen:
        unreachable = client.test_connection()

    assert (denied.ok, denied.status) == (False, 401)
    assert "401" in denied.message
    assert not unreachable.ok
    assert "unreachable" in unreachable.message
    assert urlopen.call_count == 1
    assert sleeps == []
    assert client.breaker.failures == 0


def test_connection_check_needs_endpoint(transients):
    client = AiBatchClient(AiCfg(), CircuitBreaker(transients))
    with pytest.raises(ConfigError):
        client.test_connection()
