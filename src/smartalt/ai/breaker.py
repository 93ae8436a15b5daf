"""Failure-count circuit breaker for the AI provider.

Closed → Open after ``threshold`` consecutive failures; the counter lives in
the transient store with a TTL equal to the cooldown, so the breaker closes
again on its own once the entry expires. There is no half-open state.
"""

from __future__ import annotations

import logging
from typing import Callable

from smartalt.db.transients import TransientStore
from smartalt.errors import CircuitOpenError

logger = logging.getLogger(__name__)

FAILURE_THRESHOLD = 3
COOLDOWN_SECONDS = 30 * 60


class CircuitBreaker:
    """Consecutive-failure counter keyed by provider name."""

    def __init__(
        self,
        transients: TransientStore,
        provider: str = "generic_http",
        *,
        threshold: int = FAILURE_THRESHOLD,
        cooldown: float = COOLDOWN_SECONDS,
        on_open: Callable[[int], None] | None = None,
    ) -> None:
        """
        Args:
            transients: Shared TTL store holding the counter.
            provider: Key suffix; one breaker per provider.
            threshold: Failures that open the breaker.
            cooldown: Seconds the breaker stays open after the last failure.
            on_open: Called once with the failure count when the breaker opens.
        """
        self._store = transients
        self._key = f"circuit_breaker_{provider}_failures"
        self.threshold = threshold
        self.cooldown = cooldown
        self._on_open = on_open

    @property
    def failures(self) -> int:
        return int(self._store.get(self._key, 0))

    def is_open(self) -> bool:
        return self.failures >= self.threshold

    def guard(self) -> None:
        """Raise CircuitOpenError if calls should not be attempted."""
        if self.is_open():
            raise CircuitOpenError(
                f"AI provider disabled after {self.threshold} consecutive failures; "
                f"retry after the {int(self.cooldown // 60)} minute cooldown."
            )

    def record_success(self) -> None:
        self._store.delete(self._key)

    def record_failure(self) -> int:
        """Count one failure and return the new total.

        Only the failure that crosses the threshold reports the transition;
        later failures (from concurrent callers) stay quiet.
        """
        count = self._store.increment(self._key, ttl=self.cooldown)
        if count == self.threshold:
            logger.error("Circuit breaker opened after %d consecutive AI failures", count)
            if self._on_open is not None:
                self._on_open(count)
        return count

    def reset(self) -> None:
        self._store.delete(self._key)
