"""
Centralized loguru configuration for Recollect
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from loguru import logger

from .exceptions import ConfigurationError


class LoggingManager:
    """Installs and tracks the loguru sinks used by the application."""

    _initialized = False
    _sink_ids: list[int] = []

    @classmethod
    def setup_logging(cls, logging_config: Any, verbose: bool = False) -> None:
        """Replace existing sinks with ones built from ``logging_config``."""

        try:
            cls._remove_sinks()
            logger.remove()

            level = "DEBUG" if verbose else _level_name(logging_config.level)
            cls._sink_ids.append(
                logger.add(
                    sys.stderr,
                    level=level,
                    format=logging_config.format,
                    colorize=not logging_config.structured_logging,
                    serialize=logging_config.structured_logging,
                    backtrace=verbose,
                    diagnose=verbose,
                )
            )

            if logging_config.log_to_file:
                log_path = Path(logging_config.log_file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
                cls._sink_ids.append(
                    logger.add(
                        str(log_path),
                        level=level,
                        format=logging_config.format,
                        rotation=logging_config.log_rotation,
                        retention=logging_config.log_retention,
                        serialize=logging_config.structured_logging,
                        enqueue=True,
                    )
                )

            cls._initialized = True
            logger.debug(f"Logging configured at level {level}")
        except Exception as e:
            raise ConfigurationError(f"Failed to configure logging: {e}")

    @classmethod
    def set_log_level(cls, level: str) -> None:
        from ..config.settings import LoggingSettings

        cls.setup_logging(LoggingSettings(level=level))

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._initialized

    @classmethod
    def _remove_sinks(cls) -> None:
        for sink_id in cls._sink_ids:
            try:
                logger.remove(sink_id)
            except ValueError:
                # Already removed by a global logger.remove()
                pass
        cls._sink_ids = []


def _level_name(level: Any) -> str:
    return getattr(level, "value", level) or "INFO"


def get_logger(name: str | None = None):
    """Return the shared loguru logger, bound to ``name`` when given."""

    if name:
        return logger.bind(component=name)
    return logger
