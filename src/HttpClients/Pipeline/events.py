# === NAVMAP v1 ===
# {
#   "module": "HttpClients.Pipeline.events",
#   "purpose": "Request lifecycle state, events and an isolating dispatcher.",
#   "sections": [
#     {
#       "id": "requestphase",
#       "name": "RequestPhase",
#       "anchor": "class-requestphase",
#       "kind": "class"
#     },
#     {
#       "id": "httpstate",
#       "name": "HttpState",
#       "anchor": "class-httpstate",
#       "kind": "class"
#     },
#     {
#       "id": "eventdispatcher",
#       "name": "EventDispatcher",
#       "anchor": "class-eventdispatcher",
#       "kind": "class"
#     },
#     {
#       "id": "log-http-event",
#       "name": "log_http_event",
#       "anchor": "function-log-http-event",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Request lifecycle state, events and an isolating dispatcher.

Event flow per request::

    CREATED --sending()--> SENDING --finish()--> SUCCEEDED
                                   --finish(failed=True)--> FAILED

``HttpState`` is an immutable value: transitions return new instances and
``finish()`` on a finished state returns that state unchanged, so the finish
timestamp is recorded exactly once whatever the call sites do.

The dispatcher runs every listener inside its own failure boundary. A listener
that raises is logged and skipped; the remaining listeners still run and the
HTTP outcome is never affected.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Type, TypeVar, Union

import httpx

from .errors import SubscriberError

LOGGER = logging.getLogger(__name__)


class RequestPhase(str, enum.Enum):
    CREATED = "created"
    SENDING = "sending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestPhase.SUCCEEDED, RequestPhase.FAILED)


@dataclass(frozen=True)
class HttpState:
    """Lifecycle of one request traversal through the event decorator."""

    request: httpx.Request
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: float = field(default_factory=time.perf_counter)
    started_wall: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    phase: RequestPhase = RequestPhase.CREATED
    finished_at: Optional[float] = None

    def sending(self) -> "HttpState":
        if self.phase is not RequestPhase.CREATED:
            return self
        return dataclasses.replace(self, phase=RequestPhase.SENDING)

    def finish(self, failed: bool = False, now: Optional[float] = None) -> "HttpState":
        if self.finished_at is not None:
            return self
        return dataclasses.replace(
            self,
            phase=RequestPhase.FAILED if failed else RequestPhase.SUCCEEDED,
            finished_at=time.perf_counter() if now is None else now,
        )

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    @property
    def duration_s(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    @property
    def host(self) -> str:
        return self.request.url.host


@dataclass(frozen=True)
class BeforeRequestEvent:
    state: HttpState

    name = "http.before_request"


@dataclass(frozen=True)
class SuccessRequestEvent:
    state: HttpState
    response: httpx.Response

    name = "http.request_succeeded"


@dataclass(frozen=True)
class FailedRequestEvent:
    state: HttpState
    error: BaseException

    name = "http.request_failed"


HttpEvent = Union[BeforeRequestEvent, SuccessRequestEvent, FailedRequestEvent]

E = TypeVar("E")


class EventDispatcher:
    """Publish events to listeners subscribed by event type.

    Example:
        >>> dispatcher = EventDispatcher()
        >>> seen = []
        >>> dispatcher.subscribe(BeforeRequestEvent, seen.append)
        >>> dispatcher.dispatch(BeforeRequestEvent(HttpState(httpx.Request("GET", "https://a.b/"))))
        >>> len(seen)
        1
    """

    def __init__(self) -> None:
        self._listeners: Dict[type, List[Callable[[object], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[E], listener: Callable[[E], None]) -> None:
        with self._lock:
            current = self._listeners.get(event_type, [])
            # copy-on-write: dispatch iterates without holding the lock
            self._listeners[event_type] = [*current, listener]  # type: ignore[list-item]

    def subscribe_all(self, listener: Callable[[HttpEvent], None]) -> None:
        for event_type in (BeforeRequestEvent, SuccessRequestEvent, FailedRequestEvent):
            self.subscribe(event_type, listener)

    def listeners_for(self, event: object) -> List[Callable[[object], None]]:
        found: List[Callable[[object], None]] = []
        for event_type, listeners in list(self._listeners.items()):
            if isinstance(event, event_type):
                found.extend(listeners)
        return found

    def dispatch(self, event: object) -> None:
        for listener in self.listeners_for(event):
            try:
                listener(event)
            except Exception as exc:
                failure = SubscriberError(
                    str(exc),
                    event_type=type(event).__name__,
                    listener=getattr(listener, "__qualname__", repr(listener)),
                )
                failure.__cause__ = exc
                LOGGER.error(
                    "event-listener-failed",
                    exc_info=failure,
                    extra={"event_type": failure.event_type, "listener": failure.listener},
                )


def log_http_event(event: HttpEvent) -> None:
    """Listener writing one structured log line per lifecycle event."""

    state = event.state
    fields = {
        "request_id": state.request_id,
        "method": state.request.method,
        "url": str(state.request.url),
        "phase": state.phase.value,
    }
    if state.duration_s is not None:
        fields["elapsed_ms"] = round(state.duration_s * 1000.0, 3)
    if isinstance(event, SuccessRequestEvent):
        fields["status"] = event.response.status_code
        LOGGER.info(event.name, extra=fields)
    elif isinstance(event, FailedRequestEvent):
        fields["error"] = f"{type(event.error).__name__}: {event.error}"
        LOGGER.warning(event.name, extra=fields)
    else:
        LOGGER.debug(event.name, extra=fields)


__all__ = [
    "BeforeRequestEvent",
    "EventDispatcher",
    "FailedRequestEvent",
    "HttpEvent",
    "HttpState",
    "RequestPhase",
    "SuccessRequestEvent",
    "log_http_event",
]
