"""Composable HTTP client pipeline.

Each concern (caching, retries, pacing, request and response rewriting,
persistence, lifecycle events) is an :class:`httpx.BaseTransport` that wraps
another one. Settings are resolved per destination host, so one client can
cache one API, retry another and leave everything else untouched.

Example:
    >>> from HttpClients.Pipeline import build_http_client, load_pipeline_config
    >>> config = load_pipeline_config("http-clients.yaml")  # doctest: +SKIP
    >>> with build_http_client(config) as client:  # doctest: +SKIP
    ...     client.get("https://api.example.com/users")
"""

from .assembler import (
    DEFAULT_ORDER,
    PipelineBuilder,
    assemble,
    build_base_transport,
    build_http_client,
    build_pipeline,
)
from .cache_backends import CacheBackend, FileCacheBackend, MemoryCacheBackend
from .cache_keys import CacheKeyMaker
from .config_loader import PipelineConfig, load_pipeline_config
from .config_manager import ConfigManager, normalize_host
from .errors import (
    CacheBackendError,
    ConfigurationError,
    HttpClientsError,
    PersistenceError,
    SubscriberError,
)
from .events import (
    BeforeRequestEvent,
    EventDispatcher,
    FailedRequestEvent,
    HttpState,
    RequestPhase,
    SuccessRequestEvent,
    log_http_event,
)
from .filesystem import Filesystem
from .persistence import HttpFileStore, ResponseStore
from .settings import (
    CacheSettings,
    CustomizeRequestSettings,
    CustomizeResponseSettings,
    EventSettings,
    RetrySettings,
    SleepSettings,
    StoreSettings,
)

__version__ = "0.1.0"

__all__ = [
    "BeforeRequestEvent",
    "CacheBackend",
    "CacheBackendError",
    "CacheKeyMaker",
    "CacheSettings",
    "ConfigManager",
    "ConfigurationError",
    "CustomizeRequestSettings",
    "CustomizeResponseSettings",
    "DEFAULT_ORDER",
    "EventDispatcher",
    "EventSettings",
    "FailedRequestEvent",
    "FileCacheBackend",
    "Filesystem",
    "HttpClientsError",
    "HttpFileStore",
    "HttpState",
    "MemoryCacheBackend",
    "PersistenceError",
    "PipelineBuilder",
    "PipelineConfig",
    "RequestPhase",
    "ResponseStore",
    "RetrySettings",
    "SleepSettings",
    "StoreSettings",
    "SubscriberError",
    "SuccessRequestEvent",
    "__version__",
    "assemble",
    "build_base_transport",
    "build_http_client",
    "build_pipeline",
    "load_pipeline_config",
    "log_http_event",
    "normalize_host",
]
