"""Response cache transport.

Flow per request:

1. Resolve :class:`CacheSettings` for the host; disabled or non-cacheable
   method → delegate untouched.
2. Derive the cache key and look it up. A hit is deserialized and returned
   without calling the inner transport (``response.extensions["from_cache"]``
   is ``True``).
3. On a miss, send through the inner transport. Cacheable statuses (default
   2xx) are serialized and stored with the configured TTL; everything else,
   including inner failures, passes through uncached.

Backend failures are logged and handled as a miss or a skipped write; they
never fail the request.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..cache_backends import CacheBackend
from ..cache_keys import CacheKeyMaker
from ..config_manager import ConfigManager
from ..errors import CacheBackendError
from ..serializable_response import ResponseSerializer
from ..settings import CacheSettings
from .base import MiddlewareTransport

LOGGER = logging.getLogger(__name__)


class CacheTransport(MiddlewareTransport[CacheSettings]):
    settings_cls = CacheSettings

    def __init__(
        self,
        inner: httpx.BaseTransport,
        config_manager: ConfigManager,
        backend: CacheBackend,
        *,
        key_maker: Optional[CacheKeyMaker] = None,
        serializer: Optional[ResponseSerializer] = None,
    ) -> None:
        super().__init__(inner, config_manager)
        self.backend = backend
        self.key_maker = key_maker or CacheKeyMaker()
        self.serializer = serializer or ResponseSerializer()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        settings = self.settings_for(request)
        if not settings.enabled or request.method.upper() not in settings.cacheable_methods:
            return self._inner.handle_request(request)

        key = self.key_maker.make(request, settings)
        cached = self._lookup(key, request)
        if cached is not None:
            return cached

        response = self._inner.handle_request(request)
        if settings.is_cacheable_status(response.status_code):
            self._store(key, response, settings)
        else:
            LOGGER.debug(
                "cache-skip-status",
                extra={"host": request.url.host, "status": response.status_code},
            )
        return response

    def _lookup(self, key: str, request: httpx.Request) -> Optional[httpx.Response]:
        try:
            data = self.backend.get(key)
            if data is None:
                LOGGER.debug("cache-miss", extra={"host": request.url.host, "key": key})
                return None
            response = self.serializer.loads(data, request)
        except CacheBackendError as e:
            LOGGER.warning("cache-read-failed", extra={"key": key, "error": str(e)})
            return None
        response.extensions["from_cache"] = True
        LOGGER.debug("cache-hit", extra={"host": request.url.host, "key": key})
        return response

    def _store(self, key: str, response: httpx.Response, settings: CacheSettings) -> None:
        try:
            self.backend.set(key, self.serializer.dumps(response), settings.ttl_s)
        except CacheBackendError as e:
            LOGGER.warning("cache-write-failed", extra={"key": key, "error": str(e)})
