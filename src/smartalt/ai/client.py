"""Generic HTTP client for remote alt-text generation.

One outbound call per page: every image that still needs alt text is sent
together with the page title, excerpt and a bounded content prefix, and a
JSON reply mapping images to text is expected.

Provider problems never raise. ``request_batch`` / ``generate_one`` return a
tagged outcome so callers have to handle the fallback:

- ``AltsGenerated``: at least one image received usable text.
- ``CircuitOpen``: the breaker is open; no network I/O was attempted.
- ``ProviderFailure``: non-2xx status, unparsable JSON, nothing mappable,
  or a network error that survived the single retry.

A missing or unusable endpoint raises ``ConfigError``.

Network behaviour:
- Timeout: ``ai.timeout`` seconds (default 15) per attempt.
- Network errors, truncated bodies included, are retried once after 1 second;
  HTTP error statuses are not retried.
- The breaker sees exactly one success or failure per call.
"""

from __future__ import annotations

import http.client
import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence, Union

from smartalt.ai.breaker import CircuitBreaker
from smartalt.ai.response import extract_collection, map_alts, single_alt
from smartalt.ai.template import placeholder_pairs, render_template
from smartalt.config import AiCfg
from smartalt.db.models import DocumentContext
from smartalt.errors import ConfigError, TransientNetworkError
from smartalt.html.extractor import ImageReference

logger = logging.getLogger(__name__)

_USER_AGENT = "smartalt/0.1"
_MAX_BYTES = 2 * 1024 * 1024  # 2 MB
RETRY_DELAY = 1.0
SAMPLE_IMAGE_URL = "https://example.com/image.jpg"


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AltsGenerated:
    alts: dict[str, str]
    model: str = ""
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class CircuitOpen:
    ok: bool = field(default=False, init=False)

    @property
    def alts(self) -> dict[str, str]:
        return {}


@dataclass(frozen=True)
class ProviderFailure:
    reason: str
    status: int | None = None
    ok: bool = field(default=False, init=False)

    @property
    def alts(self) -> dict[str, str]:
        return {}


BatchOutcome = Union[AltsGenerated, CircuitOpen, ProviderFailure]


@dataclass(frozen=True)
class ConnectionCheck:
    ok: bool
    message: str
    status: int | None = None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AiBatchClient:
    """Template-driven HTTP client guarded by a circuit breaker."""

    def __init__(
        self,
        cfg: AiCfg,
        breaker: CircuitBreaker,
        max_length: int = 125,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._cfg = cfg
        self._breaker = breaker
        self._max_length = max_length
        self._sleep = sleep

    @property
    def model_name(self) -> str:
        return self._cfg.model_name

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def request_batch(
        self, images: Sequence[ImageReference], context: DocumentContext
    ) -> BatchOutcome:
        """Ask the provider for alt text for all *images* in one call.

        Images sharing a URL are sent once. The returned ``alts`` map is keyed
        by source URL and only contains sanitised, non-empty text.

        Raises:
            ConfigError: If no endpoint is configured or it cannot be used.
        """
        self._require_endpoint()
        if self._breaker.is_open():
            logger.debug("AI call skipped: circuit breaker open")
            return CircuitOpen()

        unique = _unique_by_url(images)
        if not unique:
            return AltsGenerated(alts={}, model=self.model_name)

        body = self.render_body(unique, context)
        path = self._cfg.response_path
        return self._call(
            body, lambda data: map_alts(unique, extract_collection(data, path), self._max_length)
        )

    def generate_batch(
        self, images: Sequence[ImageReference], context: DocumentContext
    ) -> dict[str, str]:
        """``request_batch`` reduced to its map: ``{}`` on any provider failure."""
        return self.request_batch(images, context).alts

    def generate_one(self, image: ImageReference, context: DocumentContext) -> BatchOutcome:
        """Single-image request for bulk and admin flows (not the render path).

        Besides the batch reply shapes, a plain string at the response path
        is accepted as the image's alt text.
        """
        self._require_endpoint()
        if self._breaker.is_open():
            logger.debug("AI call skipped: circuit breaker open")
            return CircuitOpen()

        body = self.render_body([image], context)
        path = self._cfg.response_path
        return self._call(body, lambda data: single_alt(image, data, path, self._max_length))

    def test_connection(self) -> ConnectionCheck:
        """Send one request for a sample image and report whether a 2xx came back.

        A diagnostic: no retry, and the breaker is neither consulted nor updated.

        Raises:
            ConfigError: If no endpoint is configured or it cannot be used.
        """
        self._require_endpoint()
        sample = ImageReference(SAMPLE_IMAGE_URL, "", False, f'<img src="{SAMPLE_IMAGE_URL}">', 0)
        body = self.render_body([sample], DocumentContext(title="Test"))
        try:
            status, payload = self._send(body)
        except TransientNetworkError as exc:
            return ConnectionCheck(ok=False, message=f"AI endpoint unreachable: {exc}")
        if 200 <= status < 300:
            return ConnectionCheck(ok=True, message=f"AI endpoint reachable (status {status})", status=status)
        return ConnectionCheck(
            ok=False, message=f"AI API returned status {status}: {payload[:200]}", status=status
        )

    def render_body(self, images: Sequence[ImageReference], context: DocumentContext) -> str:
        return render_template(
            self._cfg.request_template,
            placeholder_pairs(images, context, self._max_length),
        )

    def headers(self) -> dict[str, str]:
        """Default JSON content type, custom headers on top, then the bearer token."""
        headers = {"Content-Type": "application/json", "User-Agent": _USER_AGENT}
        headers.update(self._cfg.headers)
        if self._cfg.key:
            headers[self._cfg.auth_header] = f"Bearer {self._cfg.key}"
        return headers

    # ------------------------------------------------------------------
    # Call pipeline
    # ------------------------------------------------------------------

    def _require_endpoint(self) -> None:
        if not self._cfg.endpoint:
            raise ConfigError("AI endpoint not configured (set ai.endpoint or SMARTALT_AI_ENDPOINT).")

    def _call(self, body: str, mapper: Callable[[Any], dict[str, str]]) -> BatchOutcome:
        try:
            status, payload = self._send_with_retry(body)
        except TransientNetworkError as exc:
            return self._fail(f"AI request failed: {exc}")

        if status < 200 or status >= 300:
            return self._fail(f"AI API returned status {status}: {payload[:200]}", status)

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            return self._fail("Invalid JSON response from AI API", status)

        alts = mapper(data)
        if not alts:
            return self._fail("No alt text in AI API response", status)

        self._breaker.record_success()
        return AltsGenerated(alts=alts, model=self.model_name)

    def _fail(self, reason: str, status: int | None = None) -> ProviderFailure:
        count = self._breaker.record_failure()
        logger.warning("%s (consecutive failures: %d)", reason, count)
        return ProviderFailure(reason=reason, status=status)

    def _send_with_retry(self, body: str) -> tuple[int, str]:
        try:
            return self._send(body)
        except TransientNetworkError as exc:
            logger.info("Transient AI error, retrying once in %.0fs: %s", RETRY_DELAY, exc)
            self._sleep(RETRY_DELAY)
            return self._send(body)

    def _send(self, body: str) -> tuple[int, str]:
        """One HTTP attempt. Returns (status, body text).

        HTTP error statuses are returned, not raised. Network and protocol
        failures raise TransientNetworkError; an endpoint urllib cannot use
        raises ConfigError.
        """
        method = self._cfg.method
        try:
            request = urllib.request.Request(
                self._cfg.endpoint,
                data=body.encode("utf-8") if method == "POST" else None,
                headers=self.headers(),
                method=method,
            )
            response = urllib.request.urlopen(request, timeout=self._cfg.timeout)
        except urllib.error.HTTPError as exc:
            try:
                detail = exc.read(_MAX_BYTES).decode("utf-8", errors="replace")
            except (OSError, http.client.HTTPException):
                detail = ""
            return exc.code, detail
        except (ValueError, http.client.InvalidURL) as exc:
            raise ConfigError(f"AI endpoint '{self._cfg.endpoint}' is not usable: {exc}") from exc
        except (OSError, http.client.HTTPException) as exc:
            raise TransientNetworkError(str(exc)) from exc

        try:
            status = getattr(response, "status", None) or response.getcode()
            payload = response.read(_MAX_BYTES).decode("utf-8", errors="replace")
        except (OSError, http.client.HTTPException) as exc:
            raise TransientNetworkError(str(exc)) from exc
        finally:
            response.close()
        return int(status), payload


def _unique_by_url(images: Sequence[ImageReference]) -> list[ImageReference]:
    seen: set[str] = set()
    unique: list[ImageReference] = []
    for image in images:
        if image.source_url not in seen:
            seen.add(image.source_url)
            unique.append(image)
    return unique
