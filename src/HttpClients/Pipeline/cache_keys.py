"""Deterministic cache keys for HTTP requests.

The key is a SHA-256 digest over a canonical JSON document describing the
request: method, normalized URI, the configured header subset and, depending
on the inclusion rule, a digest of the body. Two requests that only differ in
header order, query parameter order, host case or an explicit default port
produce the same key.
"""

from __future__ import annotations

import hashlib
import json
from typing import Dict, List

import httpx

from .settings import CacheSettings

_DEFAULT_PORTS = {"http": 80, "https": 443}
_SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})


def normalize_url(url: httpx.URL) -> str:
    """Return a canonical string form of ``url`` for keying.

    Example:
        >>> normalize_url(httpx.URL("HTTPS://Api.Example.com:443/users?b=2&a=1#top"))
        'https://api.example.com/users?a=1&b=2'
    """
    scheme = url.scheme.lower()
    host = url.host.lower()
    port = url.port
    netloc = host if port is None or port == _DEFAULT_PORTS.get(scheme) else f"{host}:{port}"
    path = url.path or "/"
    params = sorted(url.params.multi_items())
    query = str(httpx.QueryParams(params))
    return f"{scheme}://{netloc}{path}" + (f"?{query}" if query else "")


class CacheKeyMaker:
    """Build cache keys from a request and the cache settings of its host."""

    def selected_headers(
        self, request: httpx.Request, settings: CacheSettings
    ) -> Dict[str, List[str]]:
        selected: Dict[str, List[str]] = {}
        for name in settings.key_headers:
            values = request.headers.get_list(name)
            if values:
                selected[name] = values
        return selected

    def body_participates(self, request: httpx.Request, settings: CacheSettings) -> bool:
        if settings.include_body == "always":
            return True
        if settings.include_body == "never":
            return False
        return request.method.upper() not in _SAFE_METHODS

    def make(self, request: httpx.Request, settings: CacheSettings) -> str:
        document = {
            "method": request.method.upper(),
            "url": normalize_url(request.url),
            "headers": self.selected_headers(request, settings),
        }
        if self.body_participates(request, settings):
            # read() buffers streaming bodies so the request stays sendable
            document["body"] = hashlib.sha256(request.read()).hexdigest()
        canonical = json.dumps(document, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


__all__ = ["CacheKeyMaker", "normalize_url"]
