"""
Configuration management for Recollect
"""

from .manager import ConfigManager
from .settings import (
    AgentSettings,
    DatabaseSettings,
    LoggingSettings,
    LogLevel,
    OverlapPolicy,
    PipelineSettings,
    RecollectSettings,
)

__all__ = [
    "AgentSettings",
    "ConfigManager",
    "DatabaseSettings",
    "LogLevel",
    "LoggingSettings",
    "OverlapPolicy",
    "PipelineSettings",
    "RecollectSettings",
]
