"""Cache key derivation: normalization and the fields that participate."""

from __future__ import annotations

import httpx
import pytest

from HttpClients.Pipeline.cache_keys import CacheKeyMaker, normalize_url
from HttpClients.Pipeline.settings import CacheSettings


@pytest.fixture
def maker() -> CacheKeyMaker:
    return CacheKeyMaker()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("HTTPS://Api.Example.com:443/users?b=2&a=1#top", "https://api.example.com/users?a=1&b=2"),
        ("http://example.com:80", "http://example.com/"),
        ("http://example.com:8080/x", "http://example.com:8080/x"),
    ],
)
def test_normalize_url(raw: str, expected: str) -> None:
    assert normalize_url(httpx.URL(raw)) == expected


def test_equivalent_requests_share_a_key(maker: CacheKeyMaker) -> None:
    settings = CacheSettings(enabled=True)
    a = httpx.Request(
        "get",
        "https://API.example.com:443/users?page=2&sort=asc",
        headers=[("Accept", "application/json"), ("Accept-Language", "en")],
    )
    b = httpx.Request(
        "GET",
        "https://api.example.com/users?sort=asc&page=2",
        headers=[("accept-language", "en"), ("accept", "application/json")],
    )

    assert maker.make(a, settings) == maker.make(b, settings)
    assert len(maker.make(a, settings)) == 64


def test_key_ignores_headers_outside_the_selection(maker: CacheKeyMaker) -> None:
    settings = CacheSettings(enabled=True, key_headers=["accept"])
    a = httpx.Request("GET", "https://example.com/", headers={"X-Trace": "1"})
    b = httpx.Request("GET", "https://example.com/", headers={"X-Trace": "2"})
    c = httpx.Request("GET", "https://example.com/", headers={"Accept": "text/html"})

    assert maker.make(a, settings) == maker.make(b, settings)
    assert maker.make(a, settings) != maker.make(c, settings)


def test_method_and_path_change_the_key(maker: CacheKeyMaker) -> None:
    settings = CacheSettings(enabled=True)
    base = maker.make(httpx.Request("GET", "https://example.com/a"), settings)

    assert base != maker.make(httpx.Request("HEAD", "https://example.com/a"), settings)
    assert base != maker.make(httpx.Request("GET", "https://example.com/b"), settings)


def test_body_participation_follows_include_body(maker: CacheKeyMaker) -> None:
    def post(body: bytes) -> httpx.Request:
        return httpx.Request("POST", "https://example.com/search", content=body)

    default = CacheSettings(enabled=True)
    assert maker.make(post(b"q=1"), default) != maker.make(post(b"q=2"), default)

    never = CacheSettings(enabled=True, include_body="never")
    assert maker.make(post(b"q=1"), never) == maker.make(post(b"q=2"), never)

    # GET bodies only count when asked to
    get_a = httpx.Request("GET", "https://example.com/", content=b"a")
    get_b = httpx.Request("GET", "https://example.com/", content=b"b")
    assert maker.make(get_a, default) == maker.make(get_b, default)
    always = CacheSettings(enabled=True, include_body="always")
    assert maker.make(get_a, always) != maker.make(get_b, always)
