"""Byte representation of :class:`httpx.Response` objects.

Format: a single JSON line holding status, reason phrase, HTTP version and the
ordered header pairs, a newline, then the raw body bytes. The JSON line never
contains a literal newline, so the first ``\\n`` is always the separator.

Header names and values are the raw header bytes decoded as latin-1, which maps
every byte to one code point, so UTF-8 or latin-1 values come back byte for
byte.

Bodies are stored decoded (``response.read()`` undoes any Content-Encoding),
so the Content-Encoding header is dropped together with a Content-Length that
would no longer match.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import httpx

from .errors import CacheBackendError

LOGGER = logging.getLogger(__name__)

FORMAT_VERSION = 1

HEADER_ENCODING = "latin-1"


def storable_headers(response: httpx.Response) -> list[tuple[str, str]]:
    """Header pairs that remain valid for the decoded body."""

    headers = [
        (name.decode(HEADER_ENCODING), value.decode(HEADER_ENCODING))
        for name, value in response.headers.raw
    ]
    if "content-encoding" not in response.headers:
        return headers
    return [
        (name, value)
        for name, value in headers
        if name.lower() not in ("content-encoding", "content-length")
    ]


class ResponseSerializer:
    """Convert responses to and from bytes."""

    def head(self, response: httpx.Response) -> dict:
        return {
            "v": FORMAT_VERSION,
            "status": response.status_code,
            "reason": response.reason_phrase,
            "http_version": response.http_version,
            "headers": [[name, value] for name, value in storable_headers(response)],
        }

    def dumps(self, response: httpx.Response) -> bytes:
        body = response.read()
        head = json.dumps(self.head(response), separators=(",", ":"))
        return head.encode("utf-8") + b"\n" + body

    def build(
        self, head: dict, body: bytes, request: Optional[httpx.Request] = None
    ) -> httpx.Response:
        """Rebuild a response from a head mapping and its body.

        Raises:
            ValueError, TypeError, KeyError: If ``head`` is malformed.
        """
        extensions = {
            "http_version": str(head.get("http_version", "HTTP/1.1")).encode("ascii"),
            "reason_phrase": str(head.get("reason", "")).encode("ascii", errors="replace"),
        }
        headers = [
            (name.encode(HEADER_ENCODING), value.encode(HEADER_ENCODING))
            for name, value in head.get("headers", [])
        ]
        return httpx.Response(
            int(head["status"]),
            headers=headers,
            content=body,
            request=request,
            extensions=extensions,
        )

    def loads(self, data: bytes, request: Optional[httpx.Request] = None) -> httpx.Response:
        head_bytes, sep, body = data.partition(b"\n")
        if not sep:
            raise CacheBackendError("Serialized response is missing its header line")
        try:
            head = json.loads(head_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheBackendError(f"Serialized response header is not valid JSON: {e}") from e
        if not isinstance(head, dict) or "status" not in head:
            raise CacheBackendError("Serialized response header has no status")
        if head.get("v") != FORMAT_VERSION:
            raise CacheBackendError(f"Unsupported serialized response version: {head.get('v')}")
        try:
            return self.build(head, body, request)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise CacheBackendError(f"Malformed serialized response: {e}") from e


__all__ = ["FORMAT_VERSION", "HEADER_ENCODING", "ResponseSerializer", "storable_headers"]
