from __future__ import annotations

import random

import httpx
import pytest
from pipeline_helpers import ScriptedTransport, SleepRecorder

from HttpClients.Pipeline.config_manager import ConfigManager
from HttpClients.Pipeline.settings import SleepSettings
from HttpClients.Pipeline.transports.sleep import SleepTransport, delay_seconds


def test_fixed_delay_before_delegating(manager: ConfigManager, sleeper: SleepRecorder) -> None:
    manager.add(SleepSettings(enabled=True, delay_ms=250), host="slow.example.com")
    inner = ScriptedTransport([httpx.Response(200, content=b"body")])
    client = httpx.Client(transport=SleepTransport(inner, manager, sleep=sleeper))

    response = client.get("https://slow.example.com/")
    client.get("https://fast.example.com/")

    assert response.content == b"body"
    assert sleeper.calls == [0.25]
    assert inner.calls == 2


def test_zero_delay_never_sleeps(manager: ConfigManager, sleeper: SleepRecorder) -> None:
    manager.add(SleepSettings(enabled=True, delay_ms=0))
    inner = ScriptedTransport([httpx.Response(200)])

    httpx.Client(transport=SleepTransport(inner, manager, sleep=sleeper)).get("https://a.example/")

    assert sleeper.calls == []


def test_random_delay_stays_in_range(manager: ConfigManager, sleeper: SleepRecorder) -> None:
    manager.add(SleepSettings(enabled=True, delay_ms=100, max_delay_ms=200))
    inner = ScriptedTransport([httpx.Response(200)])
    transport = SleepTransport(inner, manager, sleep=sleeper, rng=random.Random(7))
    client = httpx.Client(transport=transport)

    for _ in range(20):
        client.get("https://a.example/")

    assert len(sleeper.calls) == 20
    assert all(0.1 <= s <= 0.2 for s in sleeper.calls)


def test_max_delay_below_delay_is_rejected() -> None:
    with pytest.raises(ValueError):
        SleepSettings(delay_ms=500, max_delay_ms=100)


def test_delay_seconds_fixed() -> None:
    assert delay_seconds(SleepSettings(delay_ms=1500)) == 1.5
    assert delay_seconds(SleepSettings(delay_ms=40, max_delay_ms=40)) == 0.04
