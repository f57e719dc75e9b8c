"""Pipeline assembly: ordering, pass-through and the end-to-end scenario."""

from __future__ import annotations

import httpx
import pytest
from pipeline_helpers import ScriptedTransport, SleepRecorder, connect_error

from HttpClients.Pipeline.assembler import (
    CacheTransportFactory,
    EventTransportFactory,
    PipelineBuilder,
    RetryTransportFactory,
    StoreTransportFactory,
    assemble,
    build_base_transport,
    build_http_client,
    build_pipeline,
)
from HttpClients.Pipeline.cache_backends import FileCacheBackend, MemoryCacheBackend
from HttpClients.Pipeline.config_loader import PipelineConfig, load_pipeline_config
from HttpClients.Pipeline.config_manager import ConfigManager
from HttpClients.Pipeline.errors import ConfigurationError
from HttpClients.Pipeline.events import EventDispatcher
from HttpClients.Pipeline.settings import CacheSettings, EventSettings, RetrySettings
from HttpClients.Pipeline.transports import (
    CacheTransport,
    CustomizeResponseTransport,
    EventTransport,
    RetryTransport,
    StoreTransport,
)


def _chain(transport):
    kinds = []
    while hasattr(transport, "inner"):
        kinds.append(type(transport))
        transport = transport.inner
    return kinds, transport


def _recording_dispatcher():
    dispatcher = EventDispatcher()
    seen = []
    dispatcher.subscribe_all(lambda event: seen.append(event.name))
    return dispatcher, seen


def test_nothing_enabled_returns_the_base() -> None:
    base = ScriptedTransport([httpx.Response(200)])
    transport = build_pipeline(PipelineConfig(ConfigManager()), base=base)
    assert transport is base


def test_assemble_wraps_outermost_first(manager: ConfigManager) -> None:
    manager.add(CacheSettings(enabled=True)).add(RetrySettings(enabled=True))
    base = ScriptedTransport([httpx.Response(200)])

    transport = assemble(
        base,
        [CacheTransportFactory(manager, MemoryCacheBackend()), RetryTransportFactory(manager)],
    )

    kinds, innermost = _chain(transport)
    assert kinds == [CacheTransport, RetryTransport]
    assert innermost is base


def test_missing_collaborators_fail_at_assembly(manager: ConfigManager) -> None:
    manager.add(CacheSettings(enabled=True), host="a.example")
    manager.add(EventSettings(enabled=True))
    base = ScriptedTransport([httpx.Response(200)])

    with pytest.raises(ConfigurationError, match="cache backend"):
        CacheTransportFactory(manager).create(base)
    with pytest.raises(ConfigurationError, match="event dispatcher"):
        EventTransportFactory(manager).create(base)
    # disabled kinds need nothing
    assert StoreTransportFactory(manager).create(base) is base


def test_scenario_success_on_the_last_permitted_attempt(sleeper: SleepRecorder) -> None:
    config = load_pipeline_config(
        env={},
        overrides={
            "hosts": {
                "api.example.com": {
                    "cache": {"enabled": True, "ttl_s": 60},
                    "retry": {"enabled": True, "max_retries": 2},
                    "event": {"enabled": True},
                }
            }
        },
    )
    base = ScriptedTransport([connect_error(), connect_error(), httpx.Response(200, text="hi")])
    backend = MemoryCacheBackend()
    dispatcher, seen = _recording_dispatcher()
    transport = build_pipeline(
        config, base=base, dispatcher=dispatcher, cache_backend=backend, sleep=sleeper
    )
    client = httpx.Client(transport=transport)

    first = client.get("https://api.example.com/users")

    assert first.status_code == 200
    assert base.calls == 3
    assert len(backend) == 1
    assert seen == ["http.before_request", "http.request_succeeded"]
    assert len(sleeper.calls) == 2

    second = client.get("https://api.example.com/users")

    assert second.text == "hi"
    assert second.extensions["from_cache"] is True
    assert base.calls == 3
    assert seen[2:] == ["http.before_request", "http.request_succeeded"]


def test_events_observe_customized_response(tmp_path) -> None:
    config = load_pipeline_config(
        env={},
        overrides={
            "storage": {"root": str(tmp_path)},
            "defaults": {
                "event": {"enabled": True},
                "store": {"enabled": True, "http_files": False},
                "customize_response": {
                    "enabled": True,
                    "rules": [{"action": "set_status", "status": 299}],
                },
            },
        },
    )
    statuses = []

    def record(event):
        response = getattr(event, "response", None)
        statuses.append(response.status_code if response is not None else None)

    dispatcher = EventDispatcher()
    dispatcher.subscribe_all(record)
    base = ScriptedTransport([httpx.Response(200)])
    transport = build_pipeline(config, base=base, dispatcher=dispatcher)

    kinds, _ = _chain(transport)
    assert kinds == [EventTransport, StoreTransport, CustomizeResponseTransport]

    response = httpx.Client(transport=transport).get("https://a.example/")

    assert response.status_code == 299
    assert statuses == [None, 299]
    assert len(list(tmp_path.glob("store/**/*.meta.json"))) == 1


def test_builder_derives_collaborators_from_storage(tmp_path) -> None:
    config = load_pipeline_config(
        env={},
        overrides={
            "storage": {"root": str(tmp_path), "cache_backend": "file"},
            "defaults": {"cache": {"enabled": True}, "event": {"enabled": True}},
        },
    )
    builder = PipelineBuilder(config, base=ScriptedTransport([httpx.Response(200)]))
    builder.build()

    assert isinstance(builder.cache_backend, FileCacheBackend)
    assert builder.dispatcher is not None
    assert builder.response_store is None


def test_build_http_client_sends_through_pipeline(sleeper: SleepRecorder) -> None:
    config = load_pipeline_config(
        env={}, overrides={"defaults": {"retry": {"enabled": True, "backoff_base_s": 0}}}
    )
    base = ScriptedTransport([connect_error(), httpx.Response(200)])

    with build_http_client(config, base=base, sleep=sleeper) as client:
        assert client.get("https://a.example/").status_code == 200
    assert base.calls == 2
    assert base.closed


def test_build_base_transport() -> None:
    transport = build_base_transport()
    try:
        assert isinstance(transport, httpx.HTTPTransport)
    finally:
        transport.close()
