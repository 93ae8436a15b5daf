"""Exception hierarchy for smartalt.

Provider outages are not raised across the AI client boundary; they come back
as tagged results (see ``smartalt.ai.client``). The exceptions below cover
configuration mistakes, audit-log misuse and bulk-job bookkeeping.
"""

from __future__ import annotations


class SmartAltError(Exception):
    """Base class for all smartalt errors."""


class ConfigError(SmartAltError, ValueError):
    """Raised when configuration is missing or invalid (never retried)."""


class TransientNetworkError(SmartAltError):
    """Timeout or connection failure talking to the AI endpoint."""


class CircuitOpenError(SmartAltError):
    """Raised by ``CircuitBreaker.guard()`` while the breaker is open."""


class LogEntryNotFoundError(SmartAltError):
    """No change-log entry exists for the requested id."""


class RevertError(SmartAltError):
    """A change-log entry cannot be reverted (no image or no previous value)."""


class JobNotFoundError(SmartAltError):
    """Bulk job state is missing or has expired."""


class DocumentNotFoundError(SmartAltError):
    """The host storage has no document with the requested id."""


class ImageNotFoundError(SmartAltError):
    """The host storage has no image with the requested id."""
