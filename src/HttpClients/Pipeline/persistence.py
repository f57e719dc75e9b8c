"""File persistence for request/response snapshots.

Responsibilities
----------------
- :class:`ResponseStore` saves requests, responses and errors under a
  structured path derived from the request identity and reads responses back.
- :class:`HttpFileStore` writes one JetBrains HTTP-client compatible ``.http``
  file per request so the traffic can be browsed and replayed from an IDE.

Layout (below the store root)::

    <host>/<key[:2]>/<key>.request.txt
    <host>/<key[:2]>/<key>.meta.json           # status, reason, headers
    <host>/<key[:2]>/<key>.response.<ext>      # body, ext from Content-Type
    <host>/<key[:2]>/<key>.error.txt
    http/<host>/<method>-<slug>-<key[:12]>.http

Every path is a pure function of the request (and the response content type),
so saving the same exchange twice overwrites the same files.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from pathlib import PurePosixPath
from typing import Optional

import httpx

from .cache_keys import CacheKeyMaker
from .config_manager import normalize_host
from .errors import PersistenceError
from .filesystem import Filesystem, find_extension
from .serializable_response import ResponseSerializer
from .settings import CacheSettings

LOGGER = logging.getLogger(__name__)

# Identity used for artifact names: method, URI, content negotiation and body.
IDENTITY_SETTINGS = CacheSettings(include_body="always")

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_segment(value: str, fallback: str, limit: int = 60) -> str:
    cleaned = _UNSAFE.sub("-", value).strip("-.")[:limit].strip("-.")
    return cleaned or fallback


def _host_segment(request: httpx.Request) -> str:
    host = normalize_host(request.url.host or "")
    if request.url.port is not None:
        host = f"{host}_{request.url.port}"
    return _safe_segment(host, "unknown-host", limit=253)


def _decode_body(body: bytes) -> Optional[str]:
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        return None


class ResponseStore:
    """Persist exchanges under ``<host>/<key[:2]>/<key>.*``."""

    def __init__(
        self,
        filesystem: Filesystem,
        *,
        key_maker: Optional[CacheKeyMaker] = None,
        serializer: Optional[ResponseSerializer] = None,
    ) -> None:
        self.filesystem = filesystem
        self._keys = key_maker or CacheKeyMaker()
        self._serializer = serializer or ResponseSerializer()

    def key(self, request: httpx.Request) -> str:
        return self._keys.make(request, IDENTITY_SETTINGS)

    def stem(self, request: httpx.Request) -> PurePosixPath:
        key = self.key(request)
        return PurePosixPath(_host_segment(request), key[:2], key)

    def request_path(self, request: httpx.Request) -> PurePosixPath:
        stem = self.stem(request)
        return stem.with_name(f"{stem.name}.request.txt")

    def meta_path(self, request: httpx.Request) -> PurePosixPath:
        stem = self.stem(request)
        return stem.with_name(f"{stem.name}.meta.json")

    def body_path(self, request: httpx.Request, response: httpx.Response) -> PurePosixPath:
        stem = self.stem(request)
        return stem.with_name(f"{stem.name}.response.{find_extension(response.headers)}")

    def error_path(self, request: httpx.Request) -> PurePosixPath:
        stem = self.stem(request)
        return stem.with_name(f"{stem.name}.error.txt")

    def save_request(self, request: httpx.Request) -> PurePosixPath:
        lines = [f"{request.method} {request.url} HTTP/1.1"]
        lines.extend(f"{name}: {value}" for name, value in request.headers.multi_items())
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")
        path = self.request_path(request)
        self.filesystem.write(path, head + request.read())
        return path

    def save_response(self, request: httpx.Request, response: httpx.Response) -> PurePosixPath:
        body_path = self.body_path(request, response)
        head = self._serializer.head(response)
        head["body_file"] = body_path.name
        self.filesystem.write(body_path, response.read())
        self.filesystem.write(
            self.meta_path(request), json.dumps(head, indent=2).encode("utf-8")
        )
        return body_path

    def save_error(self, request: httpx.Request, error: BaseException) -> PurePosixPath:
        path = self.error_path(request)
        text = f"{type(error).__module__}.{type(error).__qualname__}: {error}\n"
        self.filesystem.write(path, text.encode("utf-8"))
        return path

    def load_response(self, request: httpx.Request) -> httpx.Response:
        """Rebuild the response saved for ``request``.

        Raises:
            PersistenceError: If the artifacts are missing or unreadable.
        """
        meta_path = self.meta_path(request)
        try:
            head = json.loads(self.filesystem.read(meta_path))
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt response metadata: {e}", path=str(meta_path)) from e
        if not isinstance(head, dict) or not isinstance(head.get("body_file"), str):
            raise PersistenceError("Response metadata names no body file", path=str(meta_path))
        try:
            body = self.filesystem.read(self.stem(request).with_name(head["body_file"]))
            return self._serializer.build(head, body, request)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise PersistenceError(f"Corrupt response metadata: {e}", path=str(meta_path)) from e


class HttpFileStore:
    """Write ``.http`` files browsable with the JetBrains HTTP client."""

    def __init__(self, filesystem: Filesystem, responses: ResponseStore) -> None:
        self.filesystem = filesystem
        self.responses = responses

    def http_path(self, request: httpx.Request) -> PurePosixPath:
        key = self.responses.key(request)
        slug = _safe_segment(request.url.path.strip("/"), "root")
        name = f"{request.method.lower()}-{slug}-{key[:12]}.http"
        return PurePosixPath("http", _host_segment(request), name)

    def render(self, request: httpx.Request, response_file: Optional[PurePosixPath] = None) -> str:
        lines = [f"### {request.method} {request.url}", f"{request.method} {request.url}"]
        lines.extend(
            f"{name}: {value}"
            for name, value in request.headers.multi_items()
            if name.lower() not in ("host", "content-length")
        )
        body = request.read()
        if body:
            text = _decode_body(body)
            lines.append("")
            lines.append(text if text is not None else f"# binary body ({len(body)} bytes) omitted")
        if response_file is not None:
            here = self.http_path(request).parent
            lines.append("")
            lines.append(f"<> {posixpath.relpath(str(response_file), str(here))}")
        return "\n".join(lines) + "\n"

    def save(
        self, request: httpx.Request, response_file: Optional[PurePosixPath] = None
    ) -> PurePosixPath:
        path = self.http_path(request)
        self.filesystem.write(path, self.render(request, response_file).encode("utf-8"))
        return path


__all__ = ["HttpFileStore", "IDENTITY_SETTINGS", "ResponseStore"]
