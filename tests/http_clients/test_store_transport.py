from __future__ import annotations

import httpx
import pytest
from pipeline_helpers import ScriptedTransport, connect_error

from HttpClients.Pipeline.config_manager import ConfigManager
from HttpClients.Pipeline.errors import PersistenceError
from HttpClients.Pipeline.filesystem import Filesystem
from HttpClients.Pipeline.persistence import HttpFileStore, ResponseStore
from HttpClients.Pipeline.settings import StoreSettings
from HttpClients.Pipeline.transports.store import StoreTransport


def _transport(inner, manager, tmp_path, **settings) -> StoreTransport:
    manager.add(StoreSettings(enabled=True, **settings))
    responses = ResponseStore(Filesystem(tmp_path))
    return StoreTransport(inner, manager, responses, HttpFileStore(responses.filesystem, responses))


def test_exchange_is_persisted(manager: ConfigManager, tmp_path) -> None:
    inner = ScriptedTransport([httpx.Response(200, json={"ok": True})])
    transport = _transport(inner, manager, tmp_path)

    response = httpx.Client(transport=transport).get("https://api.example.com/status")

    assert response.json() == {"ok": True}
    artifacts = [p for p in tmp_path.rglob("*") if p.is_file() and p.suffix != ".http"]
    names = sorted(p.name.split(".", 1)[1] for p in artifacts)
    assert names == ["meta.json", "request.txt", "response.json"]
    assert len(list(tmp_path.rglob("*.http"))) == 1
    loaded = transport.responses.load_response(inner.requests[0])
    assert loaded.json() == {"ok": True}


def test_errors_are_saved_and_reraised(manager: ConfigManager, tmp_path) -> None:
    error = connect_error("refused")
    inner = ScriptedTransport([error])
    transport = _transport(inner, manager, tmp_path)

    with pytest.raises(httpx.ConnectError) as excinfo:
        httpx.Client(transport=transport).get("https://api.example.com/")

    assert excinfo.value is error
    assert [p.name.split(".", 1)[1] for p in tmp_path.rglob("*.error.txt")] == ["error.txt"]


def test_save_errors_can_be_disabled(manager: ConfigManager, tmp_path) -> None:
    inner = ScriptedTransport([connect_error()])
    transport = _transport(inner, manager, tmp_path, save_errors=False)

    with pytest.raises(httpx.ConnectError):
        httpx.Client(transport=transport).get("https://api.example.com/")
    assert list(tmp_path.rglob("*.error.txt")) == []


class _FailingStore(ResponseStore):
    def save_request(self, request):
        raise PersistenceError("read-only filesystem", path="x")

    def save_response(self, request, response):
        raise PersistenceError("read-only filesystem", path="x")


def test_persistence_failures_never_fail_the_request(manager: ConfigManager, tmp_path) -> None:
    manager.add(StoreSettings(enabled=True, http_files=False))
    inner = ScriptedTransport([httpx.Response(200, content=b"fine")])
    transport = StoreTransport(inner, manager, _FailingStore(Filesystem(tmp_path)))

    response = httpx.Client(transport=transport).get("https://api.example.com/")

    assert response.content == b"fine"
    assert inner.calls == 1


def test_disabled_store_writes_nothing(manager: ConfigManager, tmp_path) -> None:
    inner = ScriptedTransport([httpx.Response(200)])
    responses = ResponseStore(Filesystem(tmp_path))
    httpx.Client(transport=StoreTransport(inner, manager, responses)).get("https://a.example/")

    assert list(tmp_path.rglob("*")) == []
