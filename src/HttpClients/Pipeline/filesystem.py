"""Filesystem service rooted at a base directory.

Responsibilities
----------------
- Write files atomically (temporary file in the target directory, fsync,
  ``os.replace``) creating parent directories on demand.
- Read, probe and delete files addressed by root-relative paths.
- Reject paths that would escape the root.
- Infer a file extension from ``Content-Type`` headers.

Design Notes
------------
- Every ``OSError`` is re-raised as :class:`PersistenceError` carrying the
  offending path, so callers handle a single error type.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Mapping, Optional, Union

import httpx

from .errors import PersistenceError

LOGGER = logging.getLogger(__name__)

DEFAULT_EXTENSION = "bin"

# mimetypes answers differ between platforms for these, so pin them.
_EXTENSIONS = {
    "application/json": "json",
    "application/problem+json": "json",
    "application/ld+json": "json",
    "application/xml": "xml",
    "text/xml": "xml",
    "text/html": "html",
    "text/plain": "txt",
    "text/csv": "csv",
    "text/css": "css",
    "text/javascript": "js",
    "application/javascript": "js",
    "application/pdf": "pdf",
    "application/zip": "zip",
    "application/gzip": "gz",
    "application/x-www-form-urlencoded": "txt",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/svg+xml": "svg",
    "image/webp": "webp",
    "application/octet-stream": DEFAULT_EXTENSION,
}


def find_extension(
    headers: Union[httpx.Headers, Mapping[str, str], None],
    default: str = DEFAULT_EXTENSION,
) -> str:
    """Return the file extension (without dot) implied by ``Content-Type``.

    Examples:
        >>> find_extension({"content-type": "application/json; charset=utf-8"})
        'json'
        >>> find_extension({})
        'bin'
    """
    if not headers:
        return default
    content_type = None
    for name, value in headers.items():
        if name.lower() == "content-type":
            content_type = value
            break
    if not content_type:
        return default

    mime = content_type.split(";", 1)[0].strip().lower()
    if mime in _EXTENSIONS:
        return _EXTENSIONS[mime]
    if mime.endswith("+json"):
        return "json"
    if mime.endswith("+xml"):
        return "xml"
    guessed = mimetypes.guess_extension(mime, strict=False)
    if guessed:
        return guessed.lstrip(".")
    return default


class Filesystem:
    """Read and write files below ``root``."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root).expanduser()

    def resolve(self, path: Union[str, Path]) -> Path:
        """Map a root-relative path to an absolute one, refusing to leave the root."""

        relative = PurePosixPath(str(path).replace("\\", "/"))
        if relative.is_absolute() or ".." in relative.parts:
            raise PersistenceError(f"Path escapes storage root: {path}", path=str(path))
        return self.root.joinpath(*relative.parts)

    def write(self, path: Union[str, Path], data: bytes) -> Path:
        target = self.resolve(path)
        tmp_name: Optional[str] = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".part", dir=target.parent
            )
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
            tmp_name = None
        except OSError as e:
            raise PersistenceError(f"Cannot write {target}: {e}", path=str(target)) from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    LOGGER.debug("Temporary file already gone: %s", tmp_name)
        return target

    def read(self, path: Union[str, Path]) -> bytes:
        target = self.resolve(path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise PersistenceError(f"Cannot read {target}: {e}", path=str(target)) from e

    def exists(self, path: Union[str, Path]) -> bool:
        return self.resolve(path).is_file()

    def delete(self, path: Union[str, Path]) -> None:
        target = self.resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot delete {target}: {e}", path=str(target)) from e


__all__ = ["DEFAULT_EXTENSION", "Filesystem", "find_extension"]
