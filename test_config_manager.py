#!/usr/bin/env python3
"""
Tests for configuration loading, validation and duration parsing.
"""

import json

import pytest

from recap.config_manager import ENV_OVERRIDES, API_KEY_ENV, ConfigManager, parse_duration
from recap.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(ENV_OVERRIDES) + list(API_KEY_ENV.values()):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.parametrize("value,seconds", [
    (60, 60.0),
    (1.5, 1.5),
    ("90", 90.0),
    ("90s", 90.0),
    ("30m", 1800.0),
    ("1.5h", 5400.0),
    ("500ms", 0.5),
    (" 2M ", 120.0),
])
def test_parse_duration(value, seconds):
    assert parse_duration(value) == seconds


@pytest.mark.parametrize("value", ["", "soon", "-5s", 0, "0m", True])
def test_parse_duration_rejects(value):
    with pytest.raises(ValueError):
        parse_duration(value)


def test_default_config_file_is_created(tmp_path):
    manager = ConfigManager(str(tmp_path))
    data = json.loads(manager.config_file.read_text())
    assert data["api_keys"] == {}
    assert data["app_settings"]["batch_interval"] == 1800.0
    assert data["app_settings"]["grid_rows"] == 3

    settings = manager.load_settings()
    assert settings.capture_interval == 60.0
    assert settings.compressed_quality == 70
    assert settings.webhook_url is None


def test_environment_overrides_file(tmp_path, monkeypatch):
    manager = ConfigManager(str(tmp_path))
    manager.set_setting("capture_interval", 30)
    monkeypatch.setenv("RECAP_CAPTURE_INTERVAL", "45s")
    monkeypatch.setenv("RECAP_NOTIFICATIONS", "off")
    monkeypatch.setenv("WEBHOOK_URL", "https://hooks.example.com/recap")
    monkeypatch.setenv("OPENROUTER_API_KEY", "env-key")

    settings = manager.load_settings(batch_interval="2m")
    assert settings.capture_interval == 45.0
    assert settings.batch_interval == 120.0
    assert settings.notifications is False
    assert settings.webhook_url == "https://hooks.example.com/recap"
    assert settings.openrouter_api_key == "env-key"


def test_invalid_values_raise_config_error(tmp_path, monkeypatch):
    manager = ConfigManager(str(tmp_path))
    monkeypatch.setenv("RECAP_BATCH_INTERVAL", "whenever")
    with pytest.raises(ConfigError):
        manager.load_settings()


def test_set_setting_validates(tmp_path):
    manager = ConfigManager(str(tmp_path))
    with pytest.raises(ConfigError):
        manager.set_setting("grid_rows", 0)
    with pytest.raises(ConfigError):
        manager.set_setting("no_such_setting", 1)
    manager.set_setting("grid_rows", 2)
    assert manager.get_setting("grid_rows") == 2


def test_api_keys_and_missing_config(tmp_path, monkeypatch):
    manager = ConfigManager(str(tmp_path))
    assert manager.get_missing_config() == ["openrouter_api_key", "openai_api_key"]
    assert not manager.is_configured()

    manager.set_api_key("openrouter", "stored-key")
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    assert manager.get_api_key("openrouter") == "stored-key"
    assert manager.is_configured()

    monkeypatch.setenv("OPENROUTER_API_KEY", "env-wins")
    assert manager.get_api_key("openrouter") == "env-wins"


def test_corrupt_config_falls_back_to_defaults(tmp_path):
    manager = ConfigManager(str(tmp_path))
    manager.config_file.write_text("{not json")
    assert manager.load_settings().batch_interval == 1800.0
