"""
Layered configuration for stepwatch.

Values are merged in this order, later layers winning:
    1. Built-in defaults (``DEFAULTS``)
    2. A YAML or JSON config file
    3. Environment variables, ``STEPWATCH_<SECTION>__<KEY>``

Usage:
    config = Config(config_file=find_config_file())
    config.get("steps.preferred_source")
    settings = config.validated()    # typed StepwatchConfig
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from .config_schema import StepwatchConfig

ENV_PREFIX = "STEPWATCH_"
CONFIG_ENV_VAR = "STEPWATCH_CONFIG"
USER_CONFIG_PATH = Path.home() / ".stepwatch" / "config.yaml"
DEFAULT_DATA_DIR = "~/.stepwatch-data"

DEFAULT_PREFERRED_SOURCE = "com.sec.android.app.shealth"

DEFAULTS: dict[str, Any] = {
    "steps": {
        "preferred_source": DEFAULT_PREFERRED_SOURCE,
        "timezone": "local",
    },
    "polling": {
        "clock_interval": 1.0,
        "refresh_interval": 5.0,
        "backoff_base": 1.0,
        "backoff_max": 60.0,
    },
    "background": {
        "enabled": True,
        "interval_minutes": 15,
        "flex_minutes": 5,
        "retry_base_seconds": 30,
    },
    "source": {
        "name": "apple_health_export",
        "options": {},
    },
    "logging": {
        "level": "WARNING",
        "file": "",
    },
}


def find_config_file(explicit: str | None = None) -> str | None:
    """Pick the config file: *explicit*, then ``$STEPWATCH_CONFIG``, then ~/.stepwatch/config.yaml."""
    if explicit:
        return explicit
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return from_env
    return str(USER_CONFIG_PATH) if USER_CONFIG_PATH.exists() else None


def _deep_merge(target: dict[str, Any], overrides: dict[str, Any]) -> None:
    for key, value in overrides.items():
        if isinstance(target.get(key), dict) and isinstance(value, dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value


def _env_value(raw: str) -> Any:
    # "10" -> 10, "false" -> False; anything YAML can't read stays a string
    if not raw.strip():
        return raw
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


class Config:
    """
    Merged configuration with dot-path access.

    Nested env keys use a double underscore:
    STEPWATCH_POLLING__REFRESH_INTERVAL=10 -> config["polling"]["refresh_interval"] = 10
    """

    def __init__(
        self,
        config_file: str | None = None,
        env_prefix: str = ENV_PREFIX,
        data_dir: str | None = None,
        defaults: dict[str, Any] | None = None,
    ):
        """
        Args:
            config_file: YAML (.yaml/.yml) or JSON file; ignored if it does not exist.
            env_prefix: Prefix of overriding environment variables; empty disables them.
            data_dir: Where logs and other files go. Defaults to ~/.stepwatch-data.
            defaults: Extra defaults merged over ``DEFAULTS`` before the file.
        """
        self.config_file = os.path.expanduser(config_file) if config_file else None
        self.env_prefix = env_prefix or ""

        data_dir = os.path.expanduser(data_dir or DEFAULT_DATA_DIR)
        self.config_data: dict[str, Any] = copy.deepcopy(DEFAULTS)
        self.config_data["paths"] = {"data_dir": data_dir, "log_dir": os.path.join(data_dir, "logs")}
        if defaults:
            _deep_merge(self.config_data, defaults)
        if self.config_file and os.path.exists(self.config_file):
            _deep_merge(self.config_data, self._read_file(self.config_file))
        if self.env_prefix:
            _deep_merge(self.config_data, self._read_env())

    @staticmethod
    def _read_file(path: str) -> dict[str, Any]:
        with open(path) as f:
            if path.lower().endswith(".json"):
                return json.load(f)
            return yaml.safe_load(f) or {}

    def _read_env(self) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for env_key, raw in os.environ.items():
            if not env_key.startswith(self.env_prefix) or env_key == CONFIG_ENV_VAR:
                continue
            *sections, leaf = env_key[len(self.env_prefix) :].lower().split("__")
            node = overrides
            for section in sections:
                node = node.setdefault(section, {})
            node[leaf] = _env_value(raw)
        return overrides

    def get(self, key_path: str, default: Any = None) -> Any:
        """Look up ``"section.key"``; *default* if any part is missing."""
        node: Any = self.config_data
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key_path: str, value: Any) -> None:
        *sections, leaf = key_path.split(".")
        node = self.config_data
        for section in sections:
            node = node.setdefault(section, {})
        node[leaf] = value

    def log_file_path(self) -> str | None:
        """``logging.file`` resolved against ``paths.log_dir``; None when file logging is off."""
        name = self.get("logging.file")
        if not name:
            return None
        return os.path.join(os.path.expanduser(self.get("paths.log_dir", "")), os.path.expanduser(name))

    def ensure_directories(self) -> None:
        """Create the configured data and log directories."""
        for path_value in self.config_data.get("paths", {}).values():
            if isinstance(path_value, str):
                os.makedirs(os.path.expanduser(path_value), exist_ok=True)

    def validated(self) -> StepwatchConfig:
        """Return a typed, validated view of the current configuration.

        Raises:
            ConfigurationError: if any section fails validation.
        """
        from pydantic import ValidationError

        from .config_schema import StepwatchConfig
        from .exceptions import ConfigurationError

        try:
            return StepwatchConfig.model_validate(self.config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
