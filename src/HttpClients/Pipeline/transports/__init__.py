"""Middleware transports composing the request pipeline."""

from .base import MiddlewareTransport
from .cache import CacheTransport
from .customize import CustomizeRequestTransport, CustomizeResponseTransport
from .event import EventTransport
from .retry import RetryTransport
from .sleep import SleepTransport
from .store import StoreTransport

__all__ = [
    "CacheTransport",
    "CustomizeRequestTransport",
    "CustomizeResponseTransport",
    "EventTransport",
    "MiddlewareTransport",
    "RetryTransport",
    "SleepTransport",
    "StoreTransport",
]
