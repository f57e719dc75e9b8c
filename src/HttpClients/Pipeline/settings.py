# === NAVMAP v1 ===
# {
#   "module": "HttpClients.Pipeline.settings",
#   "purpose": "Per-destination settings records for every middleware kind.",
#   "sections": [
#     {
#       "id": "middlewaresettings",
#       "name": "MiddlewareSettings",
#       "anchor": "class-middlewaresettings",
#       "kind": "class"
#     },
#     {
#       "id": "cachesettings",
#       "name": "CacheSettings",
#       "anchor": "class-cachesettings",
#       "kind": "class"
#     },
#     {
#       "id": "retrysettings",
#       "name": "RetrySettings",
#       "anchor": "class-retrysettings",
#       "kind": "class"
#     },
#     {
#       "id": "sleepsettings",
#       "name": "SleepSettings",
#       "anchor": "class-sleepsettings",
#       "kind": "class"
#     },
#     {
#       "id": "settings-for-kind",
#       "name": "settings_for_kind",
#       "anchor": "function-settings-for-kind",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pydantic v2 Settings Models for the HTTP Client Pipeline

One immutable record per middleware kind. Every record carries ``enabled``
(default ``False``) so that the built-in default for an unconfigured host is
"disabled". All models use ``extra="forbid"`` so typos in configuration files
fail at load time instead of being silently ignored.
"""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .rules import RequestRule, ResponseRule


class MiddlewareSettings(BaseModel):
    """Base record shared by all middleware settings."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    kind: ClassVar[str] = ""

    enabled: bool = Field(default=False, description="Activate the middleware for the host")


def _normalize_methods(values: List[str]) -> List[str]:
    return [v.strip().upper() for v in values if v.strip()]


class CacheSettings(MiddlewareSettings):
    """Response cache settings."""

    kind: ClassVar[str] = "cache"

    ttl_s: int = Field(default=60, ge=0, description="Seconds a stored response stays valid")
    cacheable_methods: List[str] = Field(default_factory=lambda: ["GET", "HEAD"])
    cacheable_statuses: Optional[List[int]] = Field(
        default=None, description="Statuses worth caching; None means any 2xx"
    )
    key_headers: List[str] = Field(
        default_factory=lambda: ["accept", "accept-language", "content-type"],
        description="Request headers that participate in the cache key",
    )
    include_body: Literal["never", "unsafe_methods", "always"] = Field(
        default="unsafe_methods",
        description="When the request body participates in the cache key",
    )

    @field_validator("cacheable_methods")
    @classmethod
    def validate_methods(cls, v: List[str]) -> List[str]:
        return _normalize_methods(v)

    @field_validator("key_headers")
    @classmethod
    def validate_key_headers(cls, v: List[str]) -> List[str]:
        return sorted({h.strip().lower() for h in v if h.strip()})

    def is_cacheable_status(self, status: int) -> bool:
        if self.cacheable_statuses is None:
            return 200 <= status < 300
        return status in self.cacheable_statuses


class RetrySettings(MiddlewareSettings):
    """Retry and backoff settings."""

    kind: ClassVar[str] = "retry"

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    backoff: Literal["fixed", "exponential"] = "exponential"
    backoff_base_s: float = Field(default=0.5, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    backoff_max_s: float = Field(default=30.0, ge=0)
    retry_statuses: List[int] = Field(
        default_factory=list, description="Response statuses treated as retryable"
    )
    idempotent_methods: List[str] = Field(
        default_factory=lambda: ["GET", "HEAD", "PUT", "DELETE", "OPTIONS", "TRACE"]
    )
    allow_non_idempotent: bool = False
    retry_on_timeout: bool = True
    retry_cancelled: bool = False
    respect_retry_after: bool = True
    retry_after_cap_s: float = Field(default=60.0, ge=0)

    @field_validator("idempotent_methods")
    @classmethod
    def validate_methods(cls, v: List[str]) -> List[str]:
        return _normalize_methods(v)

    @field_validator("retry_statuses")
    @classmethod
    def validate_statuses(cls, v: List[int]) -> List[int]:
        for status in v:
            if not 100 <= status <= 599:
                raise ValueError(f"Invalid HTTP status: {status}")
        return v


class SleepSettings(MiddlewareSettings):
    """Artificial delay before a request is sent."""

    kind: ClassVar[str] = "sleep"

    delay_ms: int = Field(default=0, ge=0)
    max_delay_ms: Optional[int] = Field(
        default=None, ge=0, description="Upper bound for a random delay"
    )

    @model_validator(mode="after")
    def validate_range(self) -> "SleepSettings":
        if self.max_delay_ms is not None and self.max_delay_ms < self.delay_ms:
            raise ValueError("max_delay_ms must be >= delay_ms")
        return self


class CustomizeRequestSettings(MiddlewareSettings):
    kind: ClassVar[str] = "customize_request"

    rules: List[RequestRule] = Field(default_factory=list)


class CustomizeResponseSettings(MiddlewareSettings):
    kind: ClassVar[str] = "customize_response"

    rules: List[ResponseRule] = Field(default_factory=list)


class StoreSettings(MiddlewareSettings):
    """Request/response persistence settings."""

    kind: ClassVar[str] = "store"

    save_errors: bool = True
    http_files: bool = Field(
        default=True, description="Also write a browsable .http file per request"
    )


class EventSettings(MiddlewareSettings):
    kind: ClassVar[str] = "event"


SETTINGS_BY_KIND: Dict[str, Type[MiddlewareSettings]] = {
    cls.kind: cls
    for cls in (
        CacheSettings,
        RetrySettings,
        SleepSettings,
        CustomizeRequestSettings,
        CustomizeResponseSettings,
        StoreSettings,
        EventSettings,
    )
}


# Outermost first.
DEFAULT_ORDER: Tuple[str, ...] = (
    "customize_request",
    "event",
    "store",
    "customize_response",
    "cache",
    "retry",
    "sleep",
)


def settings_for_kind(kind: str) -> Type[MiddlewareSettings]:
    """Return the settings class registered for ``kind``.

    Raises:
        KeyError: If ``kind`` is not a known middleware kind.
    """
    try:
        return SETTINGS_BY_KIND[kind]
    except KeyError:
        raise KeyError(
            f"Unknown middleware kind {kind!r}; expected one of {sorted(SETTINGS_BY_KIND)}"
        ) from None


class StorageSettings(BaseModel):
    """Where file-backed collaborators keep their data."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    root: Path = Path("var/http-clients")
    cache_dir: str = "cache"
    store_dir: str = "store"
    cache_backend: Literal["memory", "file"] = "file"

    @property
    def cache_path(self) -> Path:
        return self.root / self.cache_dir

    @property
    def store_path(self) -> Path:
        return self.root / self.store_dir


class LoggingSettings(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(
        frozen=True, extra="forbid", populate_by_name=True
    )

    level: str = "INFO"
    json_format: bool = Field(default=False, alias="json")
    file: Optional[Path] = None
    max_log_size_mb: float = Field(default=10.0, gt=0)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v


__all__ = [
    "DEFAULT_ORDER",
    "CacheSettings",
    "CustomizeRequestSettings",
    "CustomizeResponseSettings",
    "EventSettings",
    "LoggingSettings",
    "MiddlewareSettings",
    "RetrySettings",
    "SETTINGS_BY_KIND",
    "SleepSettings",
    "StorageSettings",
    "StoreSettings",
    "settings_for_kind",
]
