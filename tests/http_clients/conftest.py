"""Shared fixtures for the HTTP client pipeline tests."""

from __future__ import annotations

from typing import Callable

import httpx
import pytest
from pipeline_helpers import FakeClock, Outcome, ScriptedTransport, SleepRecorder

from HttpClients.Pipeline.config_manager import ConfigManager


@pytest.fixture
def manager() -> ConfigManager:
    return ConfigManager()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scripted() -> Callable[..., ScriptedTransport]:
    def _make(*outcomes: Outcome) -> ScriptedTransport:
        return ScriptedTransport(outcomes or (httpx.Response(200, content=b"ok"),))

    return _make
