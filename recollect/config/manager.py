"""
Layered configuration for Recollect.

Settings start from the model defaults, take at most one configuration file,
and finally any ``RECOLLECT_*`` / ``OPENAI_*`` environment variables that are
actually set.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from loguru import logger

from ..utils.exceptions import ConfigurationError
from .settings import RecollectSettings

CONFIG_FILE_CANDIDATES = (
    "recollect.json",
    "recollect.yaml",
    "recollect.yml",
    "config/recollect.json",
    "config/recollect.yaml",
    Path.home() / ".recollect" / "config.json",
    Path.home() / ".recollect" / "config.yaml",
)


def discover_config_file() -> Path | None:
    """First existing file out of ``RECOLLECT_CONFIG_PATH`` and the usual spots."""

    for candidate in (os.getenv("RECOLLECT_CONFIG_PATH"), *CONFIG_FILE_CANDIDATES):
        if candidate and Path(candidate).is_file():
            return Path(candidate)
    return None


def merge_nested(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = merge_nested(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Owns the active settings and records where they came from."""

    _instance: ConfigManager | None = None

    def __init__(self):
        self._settings = RecollectSettings()
        self._sources: list[str] = ["defaults"]
        self._env_overrides: list[str] = []

    @classmethod
    def get_instance(cls) -> ConfigManager:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def load_from_file(self, config_path: str | Path) -> None:
        config_path = Path(config_path)
        try:
            self._settings = RecollectSettings.from_file(config_path)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except Exception as e:
            logger.error(f"Failed to load configuration from file {config_path}: {e}")
            raise ConfigurationError(f"File configuration error: {e}") from e

        self._sources.append(str(config_path))
        logger.info(f"Configuration loaded from file: {config_path}")

    def auto_load(self) -> None:
        """Load the discovered config file, then overlay the environment."""

        config_path = discover_config_file()
        if config_path is not None:
            self.load_from_file(config_path)

        try:
            env_settings, used_keys = RecollectSettings.from_env_with_metadata()
        except Exception as e:
            raise ConfigurationError(f"Environment configuration error: {e}") from e

        self._env_overrides = sorted(used_keys)
        if not used_keys:
            return

        # Only variables that are set override the file.
        self._apply(env_settings.model_dump(exclude_unset=True))
        if "environment" not in self._sources:
            self._sources.append("environment")
        logger.info(
            "Environment variables merged into configuration: {}",
            ", ".join(self._env_overrides),
        )

    def update_setting(self, key_path: str, value: Any) -> None:
        """Set one dotted key such as ``pipeline.overlap_policy``."""

        patch: dict[str, Any] = {}
        node = patch
        *parents, leaf = key_path.split(".")
        for key in parents:
            node = node.setdefault(key, {})
        node[leaf] = value

        self._apply(patch)
        shown = "***" if "api_key" in key_path or "connection_string" in key_path else value
        logger.debug(f"Updated setting {key_path} = {shown}")

    def _apply(self, patch: dict[str, Any]) -> None:
        merged = merge_nested(self._settings.model_dump(), patch)
        try:
            self._settings = RecollectSettings(**merged)
        except Exception as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def get_settings(self) -> RecollectSettings:
        return self._settings

    def get_config_info(self) -> dict[str, Any]:
        return {
            "sources": list(self._sources),
            "env_overrides": list(self._env_overrides),
            "version": self._settings.version,
            "debug_mode": self._settings.debug,
        }

    def setup_logging(self) -> None:
        # utils.logging imports the settings module, so it is resolved late.
        from ..utils.logging import LoggingManager

        try:
            LoggingManager.setup_logging(self._settings.logging, verbose=self._settings.debug)
        except Exception as e:
            raise ConfigurationError(f"Logging setup error: {e}") from e
