"""
Structured Logging Utilities

Helpers for masking sensitive fields, emitting JSON log records carrying the
``extra={...}`` fields the pipeline attaches to every event, and installing
console and rotating file handlers on the package logger.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Dict, Mapping

from .settings import LoggingSettings

PACKAGE_LOGGER = "HttpClients.Pipeline"

MASK = "***masked***"

_SENSITIVE_KEYS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "api_key",
    "apikey",
    "x-api-key",
    "token",
    "access_token",
    "secret",
    "password",
}

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def mask_sensitive_data(payload: Mapping[str, object]) -> Dict[str, object]:
    """Replace secrets in structured payloads prior to logging.

    Nested mappings are masked recursively.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": 200})
        {'token': '***masked***', 'status': 200}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = MASK
        elif isinstance(value, Mapping):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value
    return masked


def extra_fields(record: logging.LogRecord) -> Dict[str, object]:
    return {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update(extra_fields(record))
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


class ConsoleFormatter(logging.Formatter):
    """``LEVEL: message key=value ...`` for humans."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname}: {record.getMessage()}"
        fields = mask_sensitive_data(extra_fields(record))
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(settings: LoggingSettings) -> logging.Logger:
    """Install console (and optional rotating JSONL file) handlers.

    Calling it again replaces the handlers it installed earlier.

    Examples:
        >>> setup_logging(LoggingSettings(level="INFO")).name
        'HttpClients.Pipeline'
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, settings.level, logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_http_clients_managed", False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(JSONFormatter() if settings.json_format else ConsoleFormatter())
    stream_handler._http_clients_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if settings.file is not None:
        settings.file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.file,
            maxBytes=int(settings.max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._http_clients_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    return logger


__all__ = [
    "ConsoleFormatter",
    "JSONFormatter",
    "PACKAGE_LOGGER",
    "extra_fields",
    "mask_sensitive_data",
    "setup_logging",
]
