# === NAVMAP v1 ===
# {
#   "module": "HttpClients.Pipeline.assembler",
#   "purpose": "Compose middleware transports around a base transport.",
#   "sections": [
#     {
#       "id": "assemble",
#       "name": "assemble",
#       "anchor": "function-assemble",
#       "kind": "function"
#     },
#     {
#       "id": "pipelinebuilder",
#       "name": "PipelineBuilder",
#       "anchor": "class-pipelinebuilder",
#       "kind": "class"
#     },
#     {
#       "id": "build-base-transport",
#       "name": "build_base_transport",
#       "anchor": "function-build-base-transport",
#       "kind": "function"
#     },
#     {
#       "id": "build-http-client",
#       "name": "build_http_client",
#       "anchor": "function-build-http-client",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Pipeline assembly.

Factories are listed outermost first; :func:`assemble` wraps them around the
base transport from the inside out, so the first factory sees each request
first and each response last. The default stack is::

    httpx.Client
      └─ customize_request   rewrite the outgoing request
         └─ event            lifecycle events around everything below
            └─ store         persist request, then response or error
               └─ customize_response
                  └─ cache   hits skip retry and sleep entirely
                     └─ retry
                        └─ sleep
                           └─ base transport (httpx.HTTPTransport)

A factory whose kind is enabled for no host returns the inner transport
unchanged, so a disabled middleware costs nothing per request.
"""

from __future__ import annotations

import logging
import random
import ssl
import time
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Type

import certifi
import httpx

from .cache_backends import CacheBackend, FileCacheBackend, MemoryCacheBackend
from .config_loader import PipelineConfig
from .config_manager import ConfigManager
from .errors import ConfigurationError
from .events import EventDispatcher, log_http_event
from .filesystem import Filesystem
from .persistence import HttpFileStore, ResponseStore
from .settings import (
    DEFAULT_ORDER,
    CacheSettings,
    CustomizeRequestSettings,
    CustomizeResponseSettings,
    EventSettings,
    MiddlewareSettings,
    RetrySettings,
    SleepSettings,
    StorageSettings,
    StoreSettings,
)
from .transports import (
    CacheTransport,
    CustomizeRequestTransport,
    CustomizeResponseTransport,
    EventTransport,
    RetryTransport,
    SleepTransport,
    StoreTransport,
)
from .transports.retry import ExceptionPredicate, ResponsePredicate

LOGGER = logging.getLogger(__name__)


class TransportFactory:
    """Create one middleware transport around ``inner``."""

    settings_cls: ClassVar[Type[MiddlewareSettings]]

    def __init__(self, config_manager: ConfigManager) -> None:
        self.config_manager = config_manager

    @property
    def kind(self) -> str:
        return self.settings_cls.kind

    def create(self, inner: httpx.BaseTransport) -> httpx.BaseTransport:
        if not self.config_manager.is_enabled_anywhere(self.settings_cls):
            return inner
        self._check_collaborators()
        return self._build(inner)

    def _check_collaborators(self) -> None:
        pass

    def _require(self, value: Any, what: str) -> None:
        if value is None:
            raise ConfigurationError(
                f"{self.kind} middleware is enabled but no {what} was provided",
                details={"kind": self.kind, "missing": what},
            )

    def _build(self, inner: httpx.BaseTransport) -> httpx.BaseTransport:
        raise NotImplementedError


class CacheTransportFactory(TransportFactory):
    settings_cls = CacheSettings

    def __init__(
        self, config_manager: ConfigManager, backend: Optional[CacheBackend] = None
    ) -> None:
        super().__init__(config_manager)
        self.backend = backend

    def _check_collaborators(self) -> None:
        self._require(self.backend, "cache backend")

    def _build(self, inner: httpx.BaseTransport) -> httpx.BaseTransport:
        assert self.backend is not None
        return CacheTransport(inner, self.config_manager, self.backend)


class RetryTransportFactory(TransportFactory):
    settings_cls = RetrySettings

    def __init__(
        self,
        config_manager: ConfigManager,
        *,
        should_retry_response: Optional[ResponsePredicate] = None,
        should_retry_exception: Optional[ExceptionPredicate] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(config_manager)
        self.should_retry_response = should_retry_response
        self.should_retry_exception = should_retry_exception
        self.sleep = sleep

    def _build(self, inner: httpx.BaseTransport) -> httpx.BaseTransport:
        return RetryTransport(
            inner,
            self.config_manager,
            should_retry_response=self.should_retry_response,
            should_retry_exception=self.should_retry_exception,
            sleep=self.sleep,
        )


class SleepTransportFactory(TransportFactory):
    settings_cls = SleepSettings

    def __init__(
        self,
        config_manager: ConfigManager,
        *,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(config_manager)
        self.sleep = sleep
        self.rng = rng

    def _build(self, inner: httpx.BaseTransport) -> httpx.BaseTransport:
        return SleepTransport(inner, self.config_manager, sleep=self.sleep, rng=self.rng)


class CustomizeRequestTransportFactory(TransportFactory):
    settings_cls = CustomizeRequestSettings

    def _build(self, inner: httpx.BaseTransport) -> httpx.BaseTransport:
        return CustomizeRequestTransport(inner, self.config_manager)


class CustomizeResponseTransportFactory(TransportFactory):
    settings_cls = CustomizeResponseSettings

    def _build(self, inner: httpx.BaseTransport) -> httpx.BaseTransport:
        return CustomizeResponseTransport(inner, self.config_manager)


class StoreTransportFactory(TransportFactory):
    settings_cls = StoreSettings

    def __init__(
        self,
        config_manager: ConfigManager,
        responses: Optional[ResponseStore] = None,
        http_files: Optional[HttpFileStore] = None,
    ) -> None:
        super().__init__(config_manager)
        self.responses = responses
        self.http_files = http_files

    def _check_collaborators(self) -> None:
        self._require(self.responses, "response store")

    def _build(self, inner: httpx.BaseTransport) -> httpx.BaseTransport:
        assert self.responses is not None
        return StoreTransport(inner, self.config_manager, self.responses, self.http_files)


class EventTransportFactory(TransportFactory):
    settings_cls = EventSettings

    def __init__(
        self, config_manager: ConfigManager, dispatcher: Optional[EventDispatcher] = None
    ) -> None:
        super().__init__(config_manager)
        self.dispatcher = dispatcher

    def _check_collaborators(self) -> None:
        self._require(self.dispatcher, "event dispatcher")

    def _build(self, inner: httpx.BaseTransport) -> httpx.BaseTransport:
        assert self.dispatcher is not None
        return EventTransport(inner, self.config_manager, self.dispatcher)


def assemble(
    base: httpx.BaseTransport, factories: Sequence[TransportFactory]
) -> httpx.BaseTransport:
    """Wrap ``base`` with ``factories`` (outermost first) and return the outer transport."""

    transport = base
    for factory in reversed(factories):
        transport = factory.create(transport)
    return transport


def create_ssl_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context(cafile=certifi.where())
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


def build_base_transport(**kwargs: Any) -> httpx.HTTPTransport:
    """Network transport at the bottom of the pipeline.

    Retries are left to the retry middleware, so the transport itself never
    re-attempts a connection.
    """
    kwargs.setdefault("verify", create_ssl_context())
    kwargs.setdefault("retries", 0)
    return httpx.HTTPTransport(**kwargs)


def create_cache_backend(storage: StorageSettings) -> CacheBackend:
    if storage.cache_backend == "memory":
        return MemoryCacheBackend()
    return FileCacheBackend(Filesystem(storage.cache_path))


class PipelineBuilder:
    """Build the transport stack described by a :class:`PipelineConfig`.

    Collaborators that are not passed in are derived from the storage
    settings: a cache backend, a response store with ``.http`` files, and a
    dispatcher logging every event.

    Example:
        >>> config = PipelineConfig(ConfigManager())
        >>> transport = PipelineBuilder(config, base=httpx.MockTransport(lambda r: None)).build()
        >>> isinstance(transport, httpx.MockTransport)
        True
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        base: Optional[httpx.BaseTransport] = None,
        dispatcher: Optional[EventDispatcher] = None,
        cache_backend: Optional[CacheBackend] = None,
        response_store: Optional[ResponseStore] = None,
        http_file_store: Optional[HttpFileStore] = None,
        should_retry_response: Optional[ResponsePredicate] = None,
        should_retry_exception: Optional[ExceptionPredicate] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.base = base
        self.dispatcher = dispatcher
        self.cache_backend = cache_backend
        self.response_store = response_store
        self.http_file_store = http_file_store
        self.should_retry_response = should_retry_response
        self.should_retry_exception = should_retry_exception
        self.sleep = sleep

    def _enabled(self, settings_cls: Type[MiddlewareSettings]) -> bool:
        return self.config.config_manager.is_enabled_anywhere(settings_cls)

    def _ensure_collaborators(self) -> None:
        storage = self.config.storage
        if self.cache_backend is None and self._enabled(CacheSettings):
            self.cache_backend = create_cache_backend(storage)
        if self.response_store is None and self._enabled(StoreSettings):
            filesystem = Filesystem(storage.store_path)
            self.response_store = ResponseStore(filesystem)
            if self.http_file_store is None:
                self.http_file_store = HttpFileStore(filesystem, self.response_store)
        if self.dispatcher is None and self._enabled(EventSettings):
            self.dispatcher = EventDispatcher()
            self.dispatcher.subscribe_all(log_http_event)

    def factories(self) -> List[TransportFactory]:
        """Factories for ``config.order``, outermost first."""

        self._ensure_collaborators()
        manager = self.config.config_manager
        available: Dict[str, TransportFactory] = {
            "customize_request": CustomizeRequestTransportFactory(manager),
            "event": EventTransportFactory(manager, self.dispatcher),
            "store": StoreTransportFactory(manager, self.response_store, self.http_file_store),
            "customize_response": CustomizeResponseTransportFactory(manager),
            "cache": CacheTransportFactory(manager, self.cache_backend),
            "retry": RetryTransportFactory(
                manager,
                should_retry_response=self.should_retry_response,
                should_retry_exception=self.should_retry_exception,
                sleep=self.sleep,
            ),
            "sleep": SleepTransportFactory(manager, sleep=self.sleep),
        }
        return [available[name] for name in self.config.order]

    def build(self) -> httpx.BaseTransport:
        factories = self.factories()
        base = self.base if self.base is not None else build_base_transport()
        transport = assemble(base, factories)
        LOGGER.info(
            "pipeline-assembled",
            extra={
                "order": [f.kind for f in factories],
                "active": [f.kind for f in factories if self._enabled(f.settings_cls)],
            },
        )
        return transport


def build_pipeline(
    config: PipelineConfig,
    base: Optional[httpx.BaseTransport] = None,
    dispatcher: Optional[EventDispatcher] = None,
    cache_backend: Optional[CacheBackend] = None,
    **kwargs: Any,
) -> httpx.BaseTransport:
    return PipelineBuilder(
        config, base=base, dispatcher=dispatcher, cache_backend=cache_backend, **kwargs
    ).build()


def build_http_client(
    config: PipelineConfig,
    *,
    timeout: Optional[httpx.Timeout] = None,
    follow_redirects: bool = False,
    **kwargs: Any,
) -> httpx.Client:
    """Return an :class:`httpx.Client` sending through the assembled pipeline.

    Extra keyword arguments are passed to :class:`PipelineBuilder`.
    """
    transport = build_pipeline(config, **kwargs)
    return httpx.Client(
        transport=transport,
        timeout=timeout or httpx.Timeout(10.0, connect=5.0),
        follow_redirects=follow_redirects,
    )


__all__ = [
    "CacheTransportFactory",
    "CustomizeRequestTransportFactory",
    "CustomizeResponseTransportFactory",
    "DEFAULT_ORDER",
    "EventTransportFactory",
    "PipelineBuilder",
    "RetryTransportFactory",
    "SleepTransportFactory",
    "StoreTransportFactory",
    "TransportFactory",
    "assemble",
    "build_base_transport",
    "build_http_client",
    "build_pipeline",
    "create_cache_backend",
]
