"""
Utility helpers for Recollect
"""

from .exceptions import (
    AgentError,
    ConfigurationError,
    ConflictNotFoundError,
    DatabaseError,
    ExceptionHandler,
    MalformedResponseError,
    MemoryNotFoundError,
    NotFoundError,
    QuotaExceededError,
    RateLimitError,
    RecollectError,
    ThreadNotFoundError,
    TransportError,
    ValidationError,
)
from .logging import LoggingManager, get_logger

__all__ = [
    "AgentError",
    "ConfigurationError",
    "ConflictNotFoundError",
    "DatabaseError",
    "ExceptionHandler",
    "LoggingManager",
    "MalformedResponseError",
    "MemoryNotFoundError",
    "NotFoundError",
    "QuotaExceededError",
    "RateLimitError",
    "RecollectError",
    "ThreadNotFoundError",
    "TransportError",
    "ValidationError",
    "get_logger",
]
