from __future__ import annotations

"""
Pydantic-based configuration settings for Recollect
"""

import json
import os
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

SUPPORTED_DATABASE_SCHEME_PREFIXES = (
    "sqlite",
    "postgres",
    "postgresql",
    "mysql",
)


class LogLevel(str, Enum):
    """Logging levels"""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class OverlapPolicy(str, Enum):
    """What the pipeline does when a thread already has a run in flight."""

    QUEUE = "queue"
    DROP = "drop"


class DatabaseSettings(BaseModel):
    """Database configuration settings"""

    connection_string: str = Field(
        default="sqlite:///recollect.db", description="Database connection string"
    )
    echo_sql: bool = Field(default=False, description="Echo SQL statements to logs")

    @field_validator("connection_string")
    @classmethod
    def validate_connection_string(cls, v: str) -> str:
        """Validate database connection string"""
        if not v or not v.strip():
            raise ValueError("Connection string cannot be empty")

        v = v.strip()
        scheme = urlsplit(v).scheme.lower()
        if not scheme:
            raise ValueError(
                "Connection string must include a URI scheme (e.g. sqlite:///recollect.db)"
            )

        base_scheme = scheme.split("+", 1)[0]
        if not any(
            base_scheme.startswith(prefix)
            for prefix in SUPPORTED_DATABASE_SCHEME_PREFIXES
        ):
            raise ValueError(f"Unsupported database type in connection string: {v}")

        return v


class AgentSettings(BaseModel):
    """Model service configuration for the classifier, verifier and reply agents"""

    openai_api_key: str | None = Field(
        default=None, description="API key for the OpenAI compatible endpoint"
    )
    base_url: str | None = Field(
        default=None, description="Optional override for the API base URL"
    )
    classifier_model: str = Field(
        default="gpt-4o-mini", description="Model used to classify utterances"
    )
    verifier_model: str = Field(
        default="gpt-4o-mini", description="Model used to verify global memories"
    )
    reply_model: str = Field(
        default="gpt-4o-mini", description="Model used for conversational replies"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=2.0,
        description="Temperature for classification and verification calls",
    )
    reply_temperature: float = Field(
        default=0.7, ge=0.0, le=2.0, description="Temperature for replies"
    )
    max_tokens: int = Field(
        default=1024, ge=64, le=8000, description="Maximum tokens per reply"
    )
    timeout_seconds: float = Field(
        default=60.0, gt=0, le=600, description="Transport timeout per API call"
    )
    verifier_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Deadline for the verification call before falling back",
    )

    @field_validator("openai_api_key")
    @classmethod
    def validate_api_key(cls, v: str | None) -> str | None:
        if v is None:
            return v
        key = v.strip()
        if not key:
            raise ValueError("API key must be a non-empty string")
        if key.startswith("sk-") and len(key) < 20:
            raise ValueError("OpenAI API key starting with 'sk-' appears malformed")
        return key

    @field_validator("base_url", mode="before")
    @classmethod
    def _normalize_base_url(cls, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        raise TypeError("base_url must be provided as a string")


class PipelineSettings(BaseModel):
    """Memory pipeline behaviour"""

    overlap_policy: OverlapPolicy = Field(
        default=OverlapPolicy.QUEUE,
        description="Queue or drop a pipeline run when one is already in flight for the thread",
    )
    title_max_chars: int = Field(
        default=60, ge=8, le=500, description="Maximum length of derived thread titles"
    )
    history_limit: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Number of recent messages sent to the reply generator",
    )
    reply_wait_seconds: float = Field(
        default=120.0,
        gt=0,
        description="How long the HTTP surface waits for a reply",
    )

    @field_validator("overlap_policy", mode="before")
    @classmethod
    def _coerce_policy(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class LoggingSettings(BaseModel):
    """Logging configuration settings"""

    level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    format: str = Field(
        default="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        description="Log message format",
    )
    log_to_file: bool = Field(default=False, description="Enable logging to file")
    log_file_path: str = Field(default="logs/recollect.log", description="Log file path")
    log_rotation: str = Field(default="10 MB", description="Log rotation size")
    log_retention: str = Field(default="30 days", description="Log retention period")
    structured_logging: bool = Field(
        default=False, description="Emit JSON serialised log records"
    )

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value


ENV_PREFIX = "RECOLLECT_"
ENV_NESTED_DELIMITER = "__"
ENV_ALIASES = {
    "RECOLLECT_DATABASE_URL": "database__connection_string",
    "RECOLLECT_DB_URL": "database__connection_string",
    "OPENAI_API_KEY": "agents__openai_api_key",
    "OPENAI_BASE_URL": "agents__base_url",
    "RECOLLECT_LOG_LEVEL": "logging__level",
}


class RecollectSettings(BaseModel):
    """Main Recollect configuration"""

    version: str = Field(default="1.0.0", description="Configuration version")
    debug: bool = Field(default=False, description="Enable debug mode")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    agents: AgentSettings = Field(default_factory=AgentSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def _collect_env_data(cls) -> tuple[dict[str, Any], set[str]]:
        """Return environment driven configuration data and the originating keys."""

        def _assign(data: dict[str, Any], keys: list[str], value: Any) -> None:
            current = data
            for part in keys[:-1]:
                if part not in current or not isinstance(current[part], dict):
                    current[part] = {}
                current = current[part]
            current[keys[-1]] = value

        env_data: dict[str, Any] = {}
        used_keys: set[str] = set()
        aliases = {alias.lower(): path for alias, path in ENV_ALIASES.items()}

        for env_key, env_value in os.environ.items():
            compare_key = env_key.lower()
            if compare_key in aliases:
                path = aliases[compare_key]
            elif compare_key.startswith(ENV_PREFIX.lower()):
                path = compare_key[len(ENV_PREFIX) :]
            else:
                continue

            parts = [part for part in path.split(ENV_NESTED_DELIMITER) if part]
            # RECOLLECT_CONFIG_PATH and the API variables are read elsewhere.
            if not parts or parts[0] not in cls.model_fields:
                continue
            _assign(env_data, parts, env_value)
            used_keys.add(env_key)

        return env_data, used_keys

    @classmethod
    def from_env(cls) -> "RecollectSettings":
        """Create settings from environment variables"""

        env_data, _ = cls._collect_env_data()
        return cls(**env_data)

    @classmethod
    def from_env_with_metadata(cls) -> tuple["RecollectSettings", set[str]]:
        """Return settings from the environment along with the keys that were used."""

        env_data, used_keys = cls._collect_env_data()
        return cls(**env_data), used_keys

    @classmethod
    def from_file(cls, config_path: str | Path) -> "RecollectSettings":
        """Load settings from JSON/YAML file"""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as f:
            suffix = config_path.suffix.lower()
            if suffix == ".json":
                data = json.load(f)
            elif suffix in (".yml", ".yaml"):
                import yaml

                data = yaml.safe_load(f) or {}
            else:
                raise ValueError(f"Unsupported configuration file format: {suffix}")

        if not isinstance(data, dict):
            raise ValueError(f"Invalid config format in {config_path}, expected mapping")
        return cls(**data)

    def to_file(self, config_path: str | Path, format: str = "json") -> None:
        """Save settings to file"""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")

        with open(config_path, "w", encoding="utf-8") as f:
            if format.lower() == "json":
                json.dump(data, f, indent=2)
            elif format.lower() in ("yml", "yaml"):
                import yaml

                yaml.safe_dump(data, f, default_flow_style=False)
            else:
                raise ValueError(f"Unsupported format: {format}")

    def export(self, *, include_sensitive: bool = False) -> dict[str, Any]:
        """Return a serialisable representation of the settings."""

        data = self.model_dump(mode="json")
        if not include_sensitive:
            agents = data.get("agents") or {}
            has_key = bool(agents.get("openai_api_key"))
            agents["openai_api_key"] = "***" if has_key else None
        return data

    def get_database_url(self) -> str:
        """Get the database connection URL"""
        return self.database.connection_string
