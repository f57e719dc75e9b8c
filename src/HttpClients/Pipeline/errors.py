"""Error taxonomy for the HTTP client pipeline.

Responsibilities
----------------
- Define the exception types raised by the pipeline itself. Transport failures
  are *not* wrapped: they stay in the :class:`httpx.TransportError` family so
  callers see exactly what the base transport raised.
- Carry enough metadata (host, key, path) for structured log records.

Design Notes
------------
- ``ConfigurationError`` is the only error that aborts work, and it is raised
  at load/assembly time before any request is sent.
- ``CacheBackendError``, ``PersistenceError`` and ``SubscriberError`` are
  raised by collaborators and absorbed by the decorators that use them.
"""

from __future__ import annotations

from typing import Any

__all__ = (
    "HttpClientsError",
    "ConfigurationError",
    "CacheBackendError",
    "PersistenceError",
    "SubscriberError",
)


class HttpClientsError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(HttpClientsError):
    """Raised when settings are malformed or a required collaborator is missing."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class CacheBackendError(HttpClientsError):
    """Raised by cache backends; decorators treat it as a cache miss."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class PersistenceError(HttpClientsError):
    """Raised when an artifact cannot be written to or read from disk."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class SubscriberError(HttpClientsError):
    """Wraps an exception raised by an event listener."""

    def __init__(self, message: str, *, event_type: str, listener: str) -> None:
        super().__init__(message)
        self.event_type = event_type
        self.listener = listener
