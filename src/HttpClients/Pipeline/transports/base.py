"""Shared plumbing for middleware transports."""

from __future__ import annotations

from typing import Generic, Type, TypeVar

import httpx

from ..config_manager import ConfigManager
from ..settings import MiddlewareSettings

S = TypeVar("S", bound=MiddlewareSettings)


class MiddlewareTransport(httpx.BaseTransport, Generic[S]):
    """An ``httpx`` transport that owns and delegates to an inner transport.

    Subclasses set ``settings_cls`` and implement ``handle_request``; settings
    are resolved per request from the destination host so a host can be
    toggled without rebuilding the pipeline.
    """

    settings_cls: Type[S]

    def __init__(self, inner: httpx.BaseTransport, config_manager: ConfigManager) -> None:
        self._inner = inner
        self._config = config_manager

    @property
    def inner(self) -> httpx.BaseTransport:
        return self._inner

    def settings_for(self, request: httpx.Request) -> S:
        return self._config.get(self.settings_cls, request.url.host)

    def close(self) -> None:
        self._inner.close()
