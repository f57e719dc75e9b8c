"""Transport persisting every exchange through :class:`ResponseStore`.

The request is written before delegating; the response (or the error) after.
Persistence is best-effort: failures are logged and the real response or error
always reaches the caller unchanged.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Callable, Optional, TypeVar

import httpx

from ..config_manager import ConfigManager
from ..errors import PersistenceError
from ..persistence import HttpFileStore, ResponseStore
from ..settings import StoreSettings
from .base import MiddlewareTransport

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class StoreTransport(MiddlewareTransport[StoreSettings]):
    settings_cls = StoreSettings

    def __init__(
        self,
        inner: httpx.BaseTransport,
        config_manager: ConfigManager,
        responses: ResponseStore,
        http_files: Optional[HttpFileStore] = None,
    ) -> None:
        super().__init__(inner, config_manager)
        self.responses = responses
        self.http_files = http_files

    def _attempt(self, what: str, request: httpx.Request, write: Callable[[], T]) -> Optional[T]:
        try:
            return write()
        except (PersistenceError, OSError) as e:
            LOGGER.warning(
                "store-write-failed",
                extra={"artifact": what, "url": str(request.url), "error": str(e)},
            )
            return None

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        settings = self.settings_for(request)
        if not settings.enabled:
            return self._inner.handle_request(request)

        self._attempt("request", request, lambda: self.responses.save_request(request))
        try:
            response = self._inner.handle_request(request)
        except Exception as exc:
            if settings.save_errors:
                self._attempt("error", request, lambda: self.responses.save_error(request, exc))
            raise

        body_path: Optional[PurePosixPath] = self._attempt(
            "response", request, lambda: self.responses.save_response(request, response)
        )
        if settings.http_files and self.http_files is not None:
            self._attempt("http", request, lambda: self.http_files.save(request, body_path))
        LOGGER.debug(
            "store-saved",
            extra={
                "url": str(request.url),
                "status": response.status_code,
                "body_file": str(body_path),
            },
        )
        return response


__all__ = ["StoreTransport"]
