"""
Exception hierarchy for Recollect.

Every error raised by the storage layer, the model agents and the pipeline
derives from :class:`RecollectError` so callers can translate failures into
transient user notices without crashing the conversation surface.
"""

from __future__ import annotations

from typing import Any

from loguru import logger as default_logger


class RecollectError(Exception):
    """Base exception carrying a machine readable code and context."""

    default_code = "RECOLLECT_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.context = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }

    def __str__(self) -> str:
        return self.message


class ValidationError(RecollectError):
    """Caller input or a persisted value violates the data model."""

    default_code = "VALIDATION_ERROR"


class ConfigurationError(RecollectError):
    """Settings could not be loaded or are inconsistent."""

    default_code = "CONFIGURATION_ERROR"


class DatabaseError(RecollectError):
    """A storage operation failed below the service layer."""

    default_code = "DATABASE_ERROR"


class NotFoundError(RecollectError):
    """The requested record does not exist for this owner."""

    default_code = "NOT_FOUND"


class ThreadNotFoundError(NotFoundError):
    default_code = "THREAD_NOT_FOUND"


class MemoryNotFoundError(NotFoundError):
    default_code = "MEMORY_NOT_FOUND"


class ConflictNotFoundError(NotFoundError):
    default_code = "CONFLICT_NOT_FOUND"


class AgentError(RecollectError):
    """A call to an external model service failed.

    ``agent`` names the collaborator (``classifier``, ``verifier`` or
    ``reply``) so notices can say which step was affected.
    """

    default_code = "AGENT_ERROR"
    kind = "agent"

    def __init__(
        self,
        message: str,
        *,
        agent: str = "unknown",
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        merged = {"agent": agent, "kind": self.kind}
        merged.update(context or {})
        super().__init__(message, error_code=error_code, context=merged)
        self.agent = agent


class TransportError(AgentError):
    """Network or service unreachable."""

    default_code = "AGENT_TRANSPORT_ERROR"
    kind = "transport"


class MalformedResponseError(AgentError):
    """Service answered but without a parseable structured payload."""

    default_code = "AGENT_MALFORMED_RESPONSE"
    kind = "malformed"


class RateLimitError(AgentError):
    """Service explicitly signalled throttling."""

    default_code = "AGENT_RATE_LIMITED"
    kind = "rate_limit"


class QuotaExceededError(AgentError):
    """Service refused the call for billing or quota reasons."""

    default_code = "AGENT_QUOTA_EXCEEDED"
    kind = "quota"


class ExceptionHandler:
    """Helpers for consistent structured error logging."""

    @staticmethod
    def log_exception(
        error: BaseException,
        *,
        logger: Any | None = None,
        level: str = "ERROR",
        message: str | None = None,
    ) -> None:
        target = logger or default_logger
        if isinstance(error, RecollectError):
            payload = error.to_dict()
        else:
            payload = {
                "error_type": type(error).__name__,
                "error_code": "UNHANDLED",
                "message": str(error),
                "context": {},
            }
        target.bind(
            exception_data=payload,
            error_type=type(error).__name__,
        ).log(level, message or f"{type(error).__name__}: {error}")

    @staticmethod
    def user_notice(error: BaseException) -> str:
        """Return a short, non-technical notice for ``error``."""

        if isinstance(error, RateLimitError):
            return "The memory service is busy right now; please try again later."
        if isinstance(error, QuotaExceededError):
            return "The memory service quota is exhausted; memories are paused."
        if isinstance(error, MalformedResponseError):
            return "The memory service returned an unreadable answer."
        if isinstance(error, TransportError):
            return "The memory service could not be reached."
        if isinstance(error, ValidationError):
            return error.message
        return "Something went wrong while processing memories."
