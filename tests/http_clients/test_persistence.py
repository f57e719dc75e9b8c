"""ResponseStore and HttpFileStore: deterministic layout and round-trips."""

from __future__ import annotations

import json

import httpx
import pytest

from HttpClients.Pipeline.errors import PersistenceError
from HttpClients.Pipeline.filesystem import Filesystem
from HttpClients.Pipeline.persistence import HttpFileStore, ResponseStore


@pytest.fixture
def store(tmp_path) -> ResponseStore:
    return ResponseStore(Filesystem(tmp_path))


def _request(**kwargs) -> httpx.Request:
    return httpx.Request("GET", "https://api.example.com/users?page=1", **kwargs)


def test_saved_response_loads_back(store: ResponseStore) -> None:
    request = _request(headers={"Accept": "application/json"})
    response = httpx.Response(
        201,
        headers=[("Content-Type", "application/json"), ("X-Multi", "a"), ("X-Multi", "b")],
        content=b'{"id": 7}',
        request=request,
    )

    body_path = store.save_response(request, response)
    loaded = store.load_response(_request(headers={"Accept": "application/json"}))

    assert body_path.name.endswith(".response.json")
    assert loaded.status_code == 201
    assert loaded.content == b'{"id": 7}'
    assert loaded.headers.get_list("x-multi") == ["a", "b"]
    assert loaded.reason_phrase == "Created"


def test_layout_is_deterministic(store: ResponseStore, tmp_path) -> None:
    request = _request()
    store.save_request(request)
    store.save_request(_request())

    files = sorted(p.relative_to(tmp_path).as_posix() for p in tmp_path.rglob("*.request.txt"))
    key = store.key(request)
    assert files == [f"api.example.com/{key[:2]}/{key}.request.txt"]


def test_request_file_contents(store: ResponseStore, tmp_path) -> None:
    request = httpx.Request(
        "POST", "https://api.example.com/orders", headers={"X-Id": "9"}, content=b"payload"
    )
    path = store.save_request(request)

    text = (tmp_path / path).read_bytes()
    assert text.startswith(b"POST https://api.example.com/orders HTTP/1.1\r\n")
    assert b"x-id: 9\r\n" in text
    assert text.endswith(b"\r\n\r\npayload")


def test_error_file(store: ResponseStore, tmp_path) -> None:
    path = store.save_error(_request(), httpx.ConnectError("refused"))
    assert (tmp_path / path).read_text() == "httpx.ConnectError: refused\n"


def test_port_is_part_of_the_host_directory(store: ResponseStore) -> None:
    request = httpx.Request("GET", "http://localhost:8080/")
    assert store.stem(request).parts[0] == "localhost_8080"


def test_missing_artifacts_raise(store: ResponseStore) -> None:
    with pytest.raises(PersistenceError):
        store.load_response(_request())


def test_metadata_names_the_body_file(store: ResponseStore, tmp_path) -> None:
    request = _request()
    response = httpx.Response(200, headers={"Content-Type": "text/html"}, content=b"<p>")
    store.save_response(request, response)

    meta = json.loads((tmp_path / store.meta_path(request)).read_text())
    assert meta["status"] == 200
    assert meta["body_file"].endswith(".response.html")


def test_http_file_references_the_response(store: ResponseStore, tmp_path) -> None:
    http_files = HttpFileStore(store.filesystem, store)
    request = httpx.Request(
        "POST",
        "https://api.example.com/orders",
        headers={"Content-Type": "application/json"},
        content=b'{"qty": 2}',
    )
    response = httpx.Response(200, headers={"Content-Type": "application/json"}, content=b"{}")
    body_path = store.save_response(request, response)

    path = http_files.save(request, body_path)
    text = (tmp_path / path).read_text()

    assert path.parts[:2] == ("http", "api.example.com")
    assert path.name.startswith("post-orders-")
    lines = text.splitlines()
    assert lines[0] == "### POST https://api.example.com/orders"
    assert lines[1] == "POST https://api.example.com/orders"
    assert "content-type: application/json" in lines
    assert '{"qty": 2}' in lines
    assert lines[-1].startswith("<> ../../api.example.com/")
    assert lines[-1].endswith(".response.json")


def test_http_file_omits_binary_bodies(store: ResponseStore) -> None:
    http_files = HttpFileStore(store.filesystem, store)
    request = httpx.Request("PUT", "https://api.example.com/blob", content=b"\xff\xfe\x00")

    assert "# binary body (3 bytes) omitted" in http_files.render(request)


@pytest.mark.parametrize("encoding", ["utf-8", "latin-1"])
def test_non_ascii_headers_load_back_byte_identical(store: ResponseStore, encoding: str) -> None:
    request = _request()
    disposition = 'attachment; filename="résumé.txt"'.encode(encoding)
    response = httpx.Response(
        200,
        headers=[(b"Content-Type", b"text/plain"), (b"Content-Disposition", disposition)],
        content=b"cv",
        request=request,
    )

    store.save_response(request, response)
    loaded = store.load_response(_request())

    assert loaded.headers.raw == response.headers.raw
    assert loaded.content == b"cv"


@pytest.mark.parametrize(
    "meta",
    [
        {"v": 1, "status": 200, "headers": []},
        {"v": 1, "status": "abc", "headers": [], "body_file": "x.response.bin"},
        ["not", "a", "mapping"],
    ],
)
def test_malformed_metadata_raises_persistence_error(
    store: ResponseStore, tmp_path, meta
) -> None:
    request = _request()
    stem = store.stem(request)
    (tmp_path / stem.parent).mkdir(parents=True)
    (tmp_path / stem.parent / "x.response.bin").write_bytes(b"body")
    (tmp_path / store.meta_path(request)).write_text(json.dumps(meta), encoding="utf-8")

    with pytest.raises(PersistenceError):
        store.load_response(request)
