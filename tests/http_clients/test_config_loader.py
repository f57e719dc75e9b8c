"""File → environment → override precedence and validation failures."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from HttpClients.Pipeline.config_loader import load_pipeline_config
from HttpClients.Pipeline.errors import ConfigurationError
from HttpClients.Pipeline.rules import SetHeaderRule
from HttpClients.Pipeline.settings import (
    DEFAULT_ORDER,
    CacheSettings,
    CustomizeRequestSettings,
    RetrySettings,
    SleepSettings,
)

CONFIG_YAML = """
order: [customize_request, event, store, customize_response, cache, retry, sleep]
storage:
  root: ./var/test
  cache_backend: memory
defaults:
  retry: {enabled: true, max_retries: 2, retry_statuses: [503]}
hosts:
  API.Example.com:
    cache: {enabled: true, ttl_s: 60}
    retry: {max_retries: 3}
  auth.example.com:
    customize_request:
      enabled: true
      rules:
        - {action: set_header, name: Authorization, value: Bearer abc}
logging: {level: debug, json: true}
"""


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "http-clients.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


def test_load_yaml(config_file: Path) -> None:
    config = load_pipeline_config(config_file, env={})
    manager = config.config_manager

    assert config.order == DEFAULT_ORDER
    assert config.storage.cache_backend == "memory"
    assert config.logging.level == "DEBUG"
    assert config.logging.json_format is True
    assert config.source == config_file

    cache = manager.get(CacheSettings, "api.example.com")
    assert cache.enabled and cache.ttl_s == 60
    rules = manager.get(CustomizeRequestSettings, "auth.example.com").rules
    assert rules == [SetHeaderRule(name="Authorization", value="Bearer abc")]


def test_host_entries_inherit_defaults(config_file: Path) -> None:
    manager = load_pipeline_config(config_file, env={}).config_manager

    host = manager.get(RetrySettings, "api.example.com")
    assert host.enabled is True
    assert host.max_retries == 3
    assert host.retry_statuses == [503]
    assert manager.get(RetrySettings, "elsewhere.example").max_retries == 2


def test_env_overrides_file(config_file: Path) -> None:
    env = {
        "HTTPCLIENTS_DEFAULTS__RETRY__MAX_RETRIES": "7",
        "HTTPCLIENTS_STORAGE__CACHE_BACKEND": "file",
        "HTTPCLIENTS_ORDER": '["cache", "retry"]',
        "UNRELATED": "ignored",
    }
    config = load_pipeline_config(config_file, env=env)

    assert config.config_manager.get(RetrySettings, "x.example").max_retries == 7
    assert config.storage.cache_backend == "file"
    assert config.order == ("cache", "retry")


def test_overrides_win(config_file: Path) -> None:
    config = load_pipeline_config(
        config_file,
        env={"HTTPCLIENTS_DEFAULTS__RETRY__MAX_RETRIES": "7"},
        overrides={"defaults": {"retry": {"max_retries": 1}}},
    )
    retry = config.config_manager.get(RetrySettings, "x.example")
    assert retry.max_retries == 1
    assert retry.retry_statuses == [503]


def test_no_file_means_everything_disabled() -> None:
    config = load_pipeline_config(env={})
    assert config.config_manager.hosts() == []
    assert not config.config_manager.get(CacheSettings, "a.example").enabled


def test_json_files_are_supported(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"defaults": {"sleep": {"enabled": True, "delay_ms": 5}}}))
    manager = load_pipeline_config(path, env={}).config_manager
    assert manager.get(SleepSettings, "any.example").delay_ms == 5
    assert not manager.is_enabled_anywhere(RetrySettings)


@pytest.mark.parametrize(
    "document, fragment",
    [
        ({"defaults": {"compress": {"enabled": True}}}, "compress"),
        ({"defaults": {"cache": {"ttl": 5}}}, "cache"),
        ({"hosts": {"a.example": {"retry": {"max_retries": -1}}}}, "hosts.a.example.retry"),
        ({"order": ["cache", "teleport"]}, "teleport"),
        ({"order": ["cache", "cache"]}, "twice"),
        ({"unknown_section": {}}, "unknown_section"),
        (
            {"hosts": {"a.example": {"customize_request": {"rules": [{"action": "explode"}]}}}},
            "customize_request",
        ),
        ({"hosts": {"A.example": {}, "a.example.": {}}}, "normalize"),
    ],
)
def test_invalid_documents_raise(tmp_path, document, fragment: str) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(document))
    with pytest.raises(ConfigurationError) as excinfo:
        load_pipeline_config(path, env={})
    assert fragment in str(excinfo.value)


def test_missing_and_unsupported_files(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        load_pipeline_config(tmp_path / "missing.yaml", env={})
    toml = tmp_path / "config.toml"
    toml.write_text("x = 1")
    with pytest.raises(ConfigurationError):
        load_pipeline_config(toml, env={})
    broken = tmp_path / "broken.yaml"
    broken.write_text("hosts: [unclosed")
    with pytest.raises(ConfigurationError):
        load_pipeline_config(broken, env={})
