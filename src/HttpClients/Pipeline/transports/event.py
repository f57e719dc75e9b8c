"""Transport publishing request lifecycle events.

Per request: a :class:`BeforeRequestEvent` on entry, then exactly one of
:class:`FailedRequestEvent` (the error is re-raised unchanged) or
:class:`SuccessRequestEvent`. The success event is dispatched outside the
failure boundary, so nothing a listener does can turn a success into a
failure event.
"""

from __future__ import annotations

import httpx

from ..config_manager import ConfigManager
from ..events import (
    BeforeRequestEvent,
    EventDispatcher,
    FailedRequestEvent,
    HttpState,
    SuccessRequestEvent,
)
from ..settings import EventSettings
from .base import MiddlewareTransport


class EventTransport(MiddlewareTransport[EventSettings]):
    settings_cls = EventSettings

    def __init__(
        self,
        inner: httpx.BaseTransport,
        config_manager: ConfigManager,
        dispatcher: EventDispatcher,
    ) -> None:
        super().__init__(inner, config_manager)
        self.dispatcher = dispatcher

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        settings = self.settings_for(request)
        if not settings.enabled:
            return self._inner.handle_request(request)

        state = HttpState(request)
        self.dispatcher.dispatch(BeforeRequestEvent(state))
        state = state.sending()
        try:
            response = self._inner.handle_request(request)
        except BaseException as exc:
            self.dispatcher.dispatch(FailedRequestEvent(state.finish(failed=True), exc))
            raise

        self.dispatcher.dispatch(SuccessRequestEvent(state.finish(), response))
        return response


__all__ = ["EventTransport"]
