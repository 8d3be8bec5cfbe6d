#!/usr/bin/env python3
"""
Configuration Manager for recap

Handles loading and saving application configuration from a local JSON file,
with values from the environment (and a ``.env`` file) taking precedence.
The merged result is validated into an ``AppSettings`` model.
"""

import json
import os
import re
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union
from datetime import datetime

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ConfigDict, ValidationError, field_validator

from .errors import ConfigError

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) or strings such as ``"90s"``, ``"30m"``,
    ``"1.5h"`` and ``"500ms"``.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        match = _DURATION_RE.match(str(value))
        if not match:
            raise ValueError(f"invalid duration: {value!r}")
        seconds = float(match.group(1)) * _DURATION_UNITS[(match.group(2) or "s").lower()]
    if seconds <= 0:
        raise ValueError(f"duration must be positive: {value!r}")
    return seconds


class AppSettings(BaseModel):
    """Validated runtime settings."""
    capture_interval: float = Field(60.0, description="Seconds between screenshots")
    batch_interval: float = Field(1800.0, description="Seconds between batch rotations")
    grid_rows: int = Field(3, ge=1)
    grid_cols: int = Field(3, ge=1)
    padding: int = Field(20, ge=0)
    label_height: int = Field(40, ge=0)
    title_height: int = Field(40, ge=0)
    font_size: int = Field(20, ge=1)
    compressed_scale: float = Field(0.5, gt=0, le=1)
    compressed_quality: int = Field(70, ge=1, le=95)
    notifications: bool = True
    screenshots_dir: str = "~/.cache/recap/screenshots"
    webhook_url: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    vision_model: str = "openai/gpt-4.1"
    image_model: str = "gpt-image-1"
    image_size: str = "1024x1024"
    analysis_prompt_file: Optional[str] = None
    image_prompt_file: Optional[str] = None
    stage_timeout: float = Field(120.0, description="Seconds allowed for each external call")
    debug: bool = False

    model_config = ConfigDict(extra="ignore")

    @field_validator("capture_interval", "batch_interval", "stage_timeout", mode="before")
    @classmethod
    def _duration(cls, value):
        return parse_duration(value)

    @field_validator("webhook_url", "openrouter_api_key", "openai_api_key",
                     "analysis_prompt_file", "image_prompt_file", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


# Environment variable -> app_settings key
ENV_OVERRIDES = {
    "RECAP_CAPTURE_INTERVAL": "capture_interval",
    "RECAP_BATCH_INTERVAL": "batch_interval",
    "RECAP_GRID_ROWS": "grid_rows",
    "RECAP_GRID_COLS": "grid_cols",
    "RECAP_NOTIFICATIONS": "notifications",
    "RECAP_COMPRESSED_SCALE": "compressed_scale",
    "RECAP_COMPRESSED_QUALITY": "compressed_quality",
    "RECAP_SCREENSHOTS_DIR": "screenshots_dir",
    "RECAP_STAGE_TIMEOUT": "stage_timeout",
    "WEBHOOK_URL": "webhook_url",
    "OPENROUTER_MODEL": "vision_model",
    "OPENAI_IMAGE_MODEL": "image_model",
}

API_KEY_ENV = {
    "openrouter": "OPENROUTER_API_KEY",
    "openai": "OPENAI_API_KEY",
}


class ConfigManager:
    """Manages application configuration."""

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize the configuration manager.

        Args:
            config_dir: Directory to store config files. Defaults to ~/.config/recap/
        """
        if config_dir is None:
            config_dir = os.path.expanduser("~/.config/recap/")

        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.config_file = self.config_dir / "recap_config.json"

        self._ensure_default_config()

    def _default_config(self) -> Dict[str, Any]:
        defaults = AppSettings().model_dump(exclude={"openrouter_api_key", "openai_api_key", "debug"})
        return {
            "api_keys": {},
            "app_settings": defaults,
            "created_at": datetime.now().isoformat(),
            "updated_at": datetime.now().isoformat(),
        }

    def _ensure_default_config(self):
        """Ensure default configuration exists."""
        if not self.config_file.exists():
            self._save_config(self._default_config())

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file."""
        try:
            with open(self.config_file, 'r') as f:
                return json.load(f)
        except (FileNotFoundError, json.JSONDecodeError) as e:
            logger.warning(f"Config file unreadable ({e}), using defaults")
            return self._default_config()

    def _save_config(self, config: Dict[str, Any]) -> None:
        """Save configuration to file."""
        config["updated_at"] = datetime.now().isoformat()
        with open(self.config_file, 'w') as f:
            json.dump(config, f, indent=2)

    def get_api_key(self, key_name: str) -> Optional[str]:
        """Get an API key by name, preferring the environment.

        Args:
            key_name: Name of the API key ('openrouter' or 'openai')
        """
        env_name = API_KEY_ENV.get(key_name)
        if env_name and os.getenv(env_name):
            return os.getenv(env_name)
        config = self._load_config()
        return config.get("api_keys", {}).get(key_name)

    def set_api_key(self, key_name: str, value: str) -> None:
        config = self._load_config()
        config.setdefault("api_keys", {})[key_name] = value
        self._save_config(config)

    def get_setting(self, name: str, default: Any = None) -> Any:
        return self._load_config().get("app_settings", {}).get(name, default)

    def set_setting(self, name: str, value: Any) -> None:
        """Store a single app setting after validating it."""
        if name not in AppSettings.model_fields:
            raise ConfigError(f"unknown setting: {name}")
        config = self._load_config()
        settings = dict(config.get("app_settings", {}))
        settings[name] = value
        try:
            AppSettings(**settings)
        except ValidationError as e:
            raise ConfigError(f"invalid value for {name}: {e}") from e
        config["app_settings"] = settings
        self._save_config(config)

    def is_configured(self) -> bool:
        """Check if the application has what it needs to analyze images."""
        return not self.get_missing_config()

    def get_missing_config(self) -> list:
        missing = []
        if not self.get_api_key("openrouter"):
            missing.append("openrouter_api_key")
        if not self.get_api_key("openai"):
            missing.append("openai_api_key")
        return missing

    def load_settings(self, **overrides: Any) -> AppSettings:
        """Merge file, environment and explicit overrides into AppSettings.

        Raises:
            ConfigError: if the merged values do not validate.
        """
        values: Dict[str, Any] = dict(self._load_config().get("app_settings", {}))
        for env_name, key in ENV_OVERRIDES.items():
            env_value = os.getenv(env_name)
            if env_value is not None and env_value != "":
                values[key] = _coerce_env(env_value)
        values["openrouter_api_key"] = self.get_api_key("openrouter")
        values["openai_api_key"] = self.get_api_key("openai")
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return AppSettings(**values)
        except ValidationError as e:
            raise ConfigError(f"invalid configuration: {e}") from e


def _coerce_env(value: str) -> Any:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    return value


_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_dir: Optional[str] = None) -> ConfigManager:
    """Get the configuration manager, loading ``.env`` on first use."""
    global _config_manager
    if _config_manager is None or (config_dir is not None and Path(config_dir) != _config_manager.config_dir):
        load_dotenv(override=True)
        _config_manager = ConfigManager(config_dir)
    return _config_manager
