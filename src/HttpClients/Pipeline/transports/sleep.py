"""Delay transport pausing before each request is sent."""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional

import httpx

from ..config_manager import ConfigManager
from ..settings import SleepSettings
from .base import MiddlewareTransport

LOGGER = logging.getLogger(__name__)


def delay_seconds(settings: SleepSettings, rng: Optional[random.Random] = None) -> float:
    """Return the pause for one request: fixed, or uniform in ``[delay, max_delay]``."""
    if settings.max_delay_ms is None or settings.max_delay_ms == settings.delay_ms:
        return settings.delay_ms / 1000.0
    pick = (rng or random).uniform(settings.delay_ms, settings.max_delay_ms)
    return pick / 1000.0


class SleepTransport(MiddlewareTransport[SleepSettings]):
    """Block the calling thread for the configured delay, then delegate."""

    settings_cls = SleepSettings

    def __init__(
        self,
        inner: httpx.BaseTransport,
        config_manager: ConfigManager,
        *,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(inner, config_manager)
        self._sleep = sleep
        self._rng = rng

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        settings = self.settings_for(request)
        if settings.enabled:
            seconds = delay_seconds(settings, self._rng)
            if seconds > 0:
                LOGGER.debug(
                    "sleep-before-request",
                    extra={"host": request.url.host, "delay_ms": round(seconds * 1000.0, 3)},
                )
                self._sleep(seconds)
        return self._inner.handle_request(request)


__all__ = ["SleepTransport", "delay_seconds"]
