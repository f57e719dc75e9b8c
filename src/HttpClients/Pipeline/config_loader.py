# === NAVMAP v1 ===
# {
#   "module": "HttpClients.Pipeline.config_loader",
#   "purpose": "Pipeline configuration loading with file/env/override precedence.",
#   "sections": [
#     {
#       "id": "pipelineconfig",
#       "name": "PipelineConfig",
#       "anchor": "class-pipelineconfig",
#       "kind": "class"
#     },
#     {
#       "id": "read-file",
#       "name": "_read_file",
#       "anchor": "function-read-file",
#       "kind": "function"
#     },
#     {
#       "id": "merge-env-overrides",
#       "name": "_merge_env_overrides",
#       "anchor": "function-merge-env-overrides",
#       "kind": "function"
#     },
#     {
#       "id": "build-config-manager",
#       "name": "build_config_manager",
#       "anchor": "function-build-config-manager",
#       "kind": "function"
#     },
#     {
#       "id": "load-pipeline-config",
#       "name": "load_pipeline_config",
#       "anchor": "function-load-pipeline-config",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Configuration Loading with File/Env/Override Precedence

Implements three-level config composition:
1. **File level** (YAML/JSON): base configuration
2. **Environment level**: HTTPCLIENTS_* prefixed variables override file
3. **Override level**: programmatic overrides win

Environment variables use double-underscore notation:
  HTTPCLIENTS_DEFAULTS__RETRY__MAX_RETRIES=5  →  defaults.retry.max_retries=5
  HTTPCLIENTS_ORDER='["cache","retry"]'       →  order=[...]

JSON values are automatically parsed; strings are type-coerced when possible.

Document layout::

    order: [customize_request, event, store, customize_response, cache, retry, sleep]
    storage: {root: ./var/http-clients, cache_backend: file}
    defaults:
      retry: {enabled: true, max_retries: 2}
    hosts:
      api.example.com:
        cache: {enabled: true, ttl_s: 60}
    logging: {level: INFO, json: false}

A host entry inherits every field it does not set from the ``defaults`` entry
of the same kind.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config_manager import ConfigManager, normalize_host
from .errors import ConfigurationError
from .settings import (
    DEFAULT_ORDER,
    SETTINGS_BY_KIND,
    LoggingSettings,
    MiddlewareSettings,
    StorageSettings,
    settings_for_kind,
)

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "HTTPCLIENTS_"


class PipelineDocument(BaseModel):
    """Validated shape of a configuration document before settings are built."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    order: List[str] = Field(default_factory=lambda: list(DEFAULT_ORDER))
    storage: StorageSettings = Field(default_factory=StorageSettings)
    defaults: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    hosts: Dict[str, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("order")
    @classmethod
    def validate_order(cls, v: List[str]) -> List[str]:
        seen = set()
        for name in v:
            if name not in SETTINGS_BY_KIND:
                raise ValueError(
                    f"Unknown middleware {name!r} in order; "
                    f"expected one of {sorted(SETTINGS_BY_KIND)}"
                )
            if name in seen:
                raise ValueError(f"Middleware {name!r} listed twice in order")
            seen.add(name)
        return v


@dataclass(frozen=True)
class PipelineConfig:
    """Everything the assembler needs to build a pipeline."""

    config_manager: ConfigManager
    order: Tuple[str, ...] = DEFAULT_ORDER
    storage: StorageSettings = field(default_factory=StorageSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: Optional[Path] = None


# ============================================================================
# Helpers
# ============================================================================


def _read_file(path: Path) -> Dict[str, Any]:
    """Read a YAML or JSON config file.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    elif suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    else:
        raise ConfigurationError(f"Unsupported file format: {suffix}. Use .yaml or .json")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping at the top level")
    return data


def _assign_nested(data: Dict[str, Any], keys: List[str], value: Any) -> None:
    current = data
    for key in keys[:-1]:
        nxt = current.get(key)
        if not isinstance(nxt, dict):
            nxt = {}
            current[key] = nxt
        current = nxt
    current[keys[-1]] = value


def _coerce_env_value(value: str) -> Any:
    """Coerce an environment string: JSON first, then booleans, else the string."""
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        pass
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _merge_env_overrides(data: Dict[str, Any], env: Mapping[str, str]) -> Dict[str, Any]:
    """Overlay ``HTTPCLIENTS_*`` variables onto ``data`` (returns a new dict)."""
    merged = copy.deepcopy(data)
    for name in sorted(env):
        if not name.startswith(ENV_PREFIX):
            continue
        path = [part.lower() for part in name[len(ENV_PREFIX):].split("__") if part]
        if not path:
            continue
        _assign_nested(merged, path, _coerce_env_value(env[name]))
        LOGGER.debug("config-env-override", extra={"variable": name, "path": ".".join(path)})
    return merged


def _deep_merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _build_settings(kind: str, fields: Mapping[str, Any], where: str) -> MiddlewareSettings:
    try:
        cls = settings_for_kind(kind)
    except KeyError as e:
        raise ConfigurationError(str(e.args[0]), details={"location": where}) from None
    try:
        return cls.model_validate(dict(fields))
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid {kind} settings at {where}: {e}",
            details={"location": where, "errors": e.errors(include_url=False)},
        ) from e


def build_config_manager(document: PipelineDocument) -> ConfigManager:
    """Build a :class:`ConfigManager` from a validated document.

    Raises:
        ConfigurationError: On unknown kinds, invalid fields, or two host keys
            that normalize to the same hostname.
    """
    manager = ConfigManager()
    for kind, fields in document.defaults.items():
        manager.add(_build_settings(kind, fields, f"defaults.{kind}"))

    seen: Dict[str, str] = {}
    for host, kinds in document.hosts.items():
        normalized = normalize_host(host)
        if not normalized:
            raise ConfigurationError("Empty host key in hosts", details={"location": "hosts"})
        if normalized in seen:
            raise ConfigurationError(
                f"Hosts {seen[normalized]!r} and {host!r} both normalize to {normalized!r}",
                details={"location": f"hosts.{host}"},
            )
        seen[normalized] = host
        for kind, fields in kinds.items():
            inherited = {**document.defaults.get(kind, {}), **fields}
            manager.add(_build_settings(kind, inherited, f"hosts.{host}.{kind}"), host=normalized)
    return manager


def load_pipeline_config(
    path: Optional[Union[str, Path]] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> PipelineConfig:
    """Load the pipeline configuration from file, environment and overrides.

    Args:
        path: Optional YAML/JSON file. Without it, only env and overrides apply.
        env: Environment mapping, ``os.environ`` when omitted.
        overrides: Nested mapping deep-merged last.

    Raises:
        ConfigurationError: If any layer is unreadable or fails validation.
    """
    source = Path(path).expanduser() if path is not None else None
    data: Dict[str, Any] = _read_file(source) if source is not None else {}
    data = _merge_env_overrides(data, os.environ if env is None else env)
    if overrides:
        data = _deep_merge(data, overrides)

    try:
        document = PipelineDocument.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid pipeline configuration: {e}",
            details={"errors": e.errors(include_url=False)},
        ) from e

    manager = build_config_manager(document)
    for kind in SETTINGS_BY_KIND:
        if kind not in document.order and manager.is_enabled_anywhere(settings_for_kind(kind)):
            LOGGER.warning("config-kind-not-ordered", extra={"kind": kind})

    LOGGER.info(
        "config-loaded",
        extra={
            "source": str(source) if source else None,
            "hosts": len(manager.hosts()),
            "order": list(document.order),
        },
    )
    return PipelineConfig(
        config_manager=manager,
        order=tuple(document.order),
        storage=document.storage,
        logging=document.logging,
        source=source,
    )


__all__ = [
    "ENV_PREFIX",
    "PipelineConfig",
    "PipelineDocument",
    "build_config_manager",
    "load_pipeline_config",
]
