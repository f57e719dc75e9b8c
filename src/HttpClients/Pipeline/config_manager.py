"""Per-destination settings resolution.

Responsibilities
----------------
- Hold the immutable settings records loaded at startup, keyed by
  (settings class, normalized hostname).
- Resolve ``(settings class, host) → settings`` with the fallback chain
  host entry → default entry → built-in (disabled) default.
- Normalize host keys with IDNA 2008 + UTS #46 so lookups are insensitive to
  case, trailing dots and Unicode spelling.

Design Notes
------------
- Lookups are plain dictionary reads and run once per request in every
  decorator; registration happens during setup and is lock-protected.
- Absence of configuration is never an error, it means "disabled".
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterator, Optional, Tuple, Type, TypeVar

import idna

from .settings import MiddlewareSettings

LOGGER = logging.getLogger(__name__)

S = TypeVar("S", bound=MiddlewareSettings)


def normalize_host(host: str) -> str:
    """Normalize host to lowercase ASCII using IDNA 2008 + UTS #46.

    Examples:
        "API.Example.Com" → "api.example.com"
        "münchen.example" → "xn--mnchen-3ya.example"

    Notes:
        - Strips whitespace and trailing dots before encoding
        - Falls back to lowercase on IDNA errors
    """
    h = host.strip().rstrip(".")
    if not h:
        return h

    try:
        return idna.encode(h, uts46=True).decode("ascii")
    except idna.IDNAError as e:
        LOGGER.debug("IDNA encoding failed for %r: %s; falling back to lowercase", h, e)
        return h.lower()


class ConfigManager:
    """Resolve settings records for a destination host.

    Example:
        >>> from HttpClients.Pipeline.settings import CacheSettings, RetrySettings
        >>> manager = ConfigManager()
        >>> _ = manager.add(RetrySettings(enabled=True, max_retries=2))
        >>> _ = manager.add(CacheSettings(enabled=True, ttl_s=60), host="api.example.com")
        >>> manager.get(CacheSettings, "API.example.com").ttl_s
        60
        >>> manager.get(CacheSettings, "other.example.com").enabled
        False
    """

    def __init__(self) -> None:
        self._defaults: Dict[Type[MiddlewareSettings], MiddlewareSettings] = {}
        self._hosts: Dict[Type[MiddlewareSettings], Dict[str, MiddlewareSettings]] = {}
        self._builtin: Dict[Type[MiddlewareSettings], MiddlewareSettings] = {}
        self._lock = threading.Lock()

    def add(self, settings: MiddlewareSettings, host: Optional[str] = None) -> "ConfigManager":
        """Register ``settings`` as the default for its kind, or for ``host``."""

        cls = type(settings)
        with self._lock:
            if host is None:
                self._defaults[cls] = settings
            else:
                self._hosts.setdefault(cls, {})[normalize_host(host)] = settings
        return self

    def get(self, settings_cls: Type[S], host: Optional[str]) -> S:
        """Return the settings for ``host``; never raises for missing entries."""

        if host:
            by_host = self._hosts.get(settings_cls)
            if by_host:
                found = by_host.get(normalize_host(host))
                if found is not None:
                    return found  # type: ignore[return-value]

        default = self._defaults.get(settings_cls)
        if default is not None:
            return default  # type: ignore[return-value]

        builtin = self._builtin.get(settings_cls)
        if builtin is None:
            builtin = settings_cls()
            self._builtin[settings_cls] = builtin
        return builtin  # type: ignore[return-value]

    def is_enabled_anywhere(self, settings_cls: Type[MiddlewareSettings]) -> bool:
        """True when the kind is enabled by default or for at least one host."""

        default = self._defaults.get(settings_cls)
        if default is not None and default.enabled:
            return True
        return any(s.enabled for s in self._hosts.get(settings_cls, {}).values())

    def hosts(self) -> list[str]:
        """All hosts with at least one explicit entry, sorted."""

        names = set()
        for by_host in self._hosts.values():
            names.update(by_host)
        return sorted(names)

    def entries(self) -> Iterator[Tuple[Optional[str], MiddlewareSettings]]:
        """Yield ``(host, settings)`` pairs; ``host`` is None for defaults."""

        for settings in self._defaults.values():
            yield None, settings
        for by_host in self._hosts.values():
            for host, settings in sorted(by_host.items()):
                yield host, settings


__all__ = ["ConfigManager", "normalize_host"]
