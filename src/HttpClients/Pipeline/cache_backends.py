"""Key/value byte caches with expiry used by the cache decorator.

Responsibilities
----------------
- Define the :class:`CacheBackend` protocol (``get``/``set``/``delete``).
- Provide an in-process backend (:class:`MemoryCacheBackend`) and a disk
  backend (:class:`FileCacheBackend`) built on :class:`Filesystem`.

Design Notes
------------
- Expired entries are reported as a miss and removed lazily; expiry is never
  an error.
- Backends are safe under concurrent use. Last write wins on key collisions.
- Failures surface as :class:`CacheBackendError`; callers treat them as a miss.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
import time
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

from filelock import FileLock, Timeout

from .errors import CacheBackendError, PersistenceError
from .filesystem import Filesystem

LOGGER = logging.getLogger(__name__)

_HEX_KEY = re.compile(r"^[0-9a-f]{16,128}$")


@runtime_checkable
class CacheBackend(Protocol):
    """Byte cache with per-entry time-to-live."""

    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or ``None`` on a miss or an expired entry."""

    def set(self, key: str, value: bytes, ttl_s: float) -> None:
        """Store ``value`` for ``ttl_s`` seconds."""

    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""


class MemoryCacheBackend:
    """Thread-safe in-process cache.

    Args:
        clock: Monotonic time source, injectable for tests.
        sweep_every: Expired entries are swept after this many writes, so keys
            that are never read again do not accumulate.
    """

    def __init__(
        self, clock: Callable[[], float] = time.monotonic, *, sweep_every: int = 256
    ) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[bytes, float]] = {}
        self._lock = threading.Lock()
        self._sweep_every = max(1, sweep_every)
        self._writes = 0

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: bytes, ttl_s: float) -> None:
        with self._lock:
            now = self._clock()
            self._entries[key] = (value, now + ttl_s)
            self._writes += 1
            if self._writes % self._sweep_every == 0:
                self._evict_expired(now)

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            return self._evict_expired(self._clock())

    def _evict_expired(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


def key_to_path(key: str) -> PurePosixPath:
    """Fan cache keys out over two directory levels.

    Example:
        >>> str(key_to_path("ab12cd34ef56ab12cd34"))
        'ab/12/ab12cd34ef56ab12cd34.cache'
    """
    digest = key if _HEX_KEY.match(key) else hashlib.sha256(key.encode("utf-8")).hexdigest()
    return PurePosixPath(digest[:2], digest[2:4], f"{digest}.cache")


class FileCacheBackend:
    """Disk cache storing one file per entry.

    Each file holds a JSON line with the absolute expiry (wall clock, epoch
    seconds) followed by the cached bytes. Writers and readers of the same
    entry serialize on a :class:`filelock.FileLock`.
    """

    def __init__(
        self,
        filesystem: Filesystem,
        *,
        lock_timeout_s: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fs = filesystem
        self._lock_timeout_s = lock_timeout_s
        self._clock = clock

    def _lock_path(self, relative: PurePosixPath) -> Path:
        target = self._fs.resolve(relative)
        return target.with_name(target.name + ".lock")

    def _lock_for(self, relative: PurePosixPath) -> FileLock:
        lock_path = self._lock_path(relative)
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(str(lock_path), timeout=self._lock_timeout_s)

    def get(self, key: str) -> Optional[bytes]:
        relative = key_to_path(key)
        if not self._fs.exists(relative):
            return None
        try:
            with self._lock_for(relative):
                data = self._fs.read(relative)
        except (Timeout, PersistenceError, OSError) as e:
            raise CacheBackendError(f"Cannot read cache entry: {e}", key=key) from e

        head, sep, value = data.partition(b"\n")
        try:
            expires_at = float(json.loads(head)["expires_at"]) if sep else None
        except (ValueError, KeyError, TypeError) as e:
            raise CacheBackendError(f"Corrupt cache entry: {e}", key=key) from e
        if expires_at is None:
            raise CacheBackendError("Corrupt cache entry: missing header", key=key)
        if self._clock() >= expires_at:
            self.delete(key)
            return None
        return value

    def set(self, key: str, value: bytes, ttl_s: float) -> None:
        relative = key_to_path(key)
        head = json.dumps({"expires_at": self._clock() + ttl_s}).encode("utf-8")
        try:
            with self._lock_for(relative):
                self._fs.write(relative, head + b"\n" + value)
        except (Timeout, PersistenceError, OSError) as e:
            raise CacheBackendError(f"Cannot write cache entry: {e}", key=key) from e

    def delete(self, key: str) -> None:
        relative = key_to_path(key)
        try:
            with self._lock_for(relative):
                self._fs.delete(relative)
        except (Timeout, PersistenceError, OSError) as e:
            raise CacheBackendError(f"Cannot delete cache entry: {e}", key=key) from e
        # The lock file is only needed while an entry exists.
        try:
            self._lock_path(relative).unlink(missing_ok=True)
        except OSError as e:
            LOGGER.debug("cache-lock-cleanup-failed", extra={"key": key, "error": str(e)})


__all__ = ["CacheBackend", "FileCacheBackend", "MemoryCacheBackend", "key_to_path"]
