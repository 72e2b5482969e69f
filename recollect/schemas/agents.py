"""
Pydantic contracts exchanged with the classifier, verifier and reply services.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import ClassifierLabel, MemoryType


def _normalize_label(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower().replace(" ", "_").replace("-", "_")
    return value


class MemoryClassification(BaseModel):
    """Classifier verdict for a single utterance."""

    memory_type: ClassifierLabel = Field(description="Memory category or a discard label")
    is_global_candidate: bool = Field(
        description="Whether the fact should be known in every thread"
    )
    short_summary: str = Field(description="One line normalized description")
    reason: str = Field(description="Why this classification was chosen")
    confidence: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Classifier confidence"
    )

    @field_validator("memory_type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> Any:
        return _normalize_label(value)

    @field_validator("short_summary", "reason", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @model_validator(mode="after")
    def _summary_for_persistent(self) -> MemoryClassification:
        if self.memory_type.is_persistent and not self.short_summary:
            raise ValueError("short_summary is required for persistent memories")
        return self

    @property
    def is_persistent(self) -> bool:
        return self.memory_type.is_persistent


class ExistingMemory(BaseModel):
    """A stored global memory as shown to the verifier."""

    id: str | None = None
    memory_type: MemoryType
    short_summary: str


class VerificationResult(BaseModel):
    """Verifier verdict for a global candidate."""

    verified: bool
    adjusted_memory_type: MemoryType | None = None
    adjusted_summary: str | None = None
    verification_explanation: str = ""
    conflicts_detected: list[str] = Field(default_factory=list)

    @field_validator("adjusted_memory_type", mode="before")
    @classmethod
    def _coerce_adjusted_type(cls, value: Any) -> Any:
        value = _normalize_label(value)
        if value in ("", "null", "none"):
            return None
        return value

    @field_validator("adjusted_summary", mode="before")
    @classmethod
    def _blank_summary(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("verification_explanation", mode="before")
    @classmethod
    def _explanation_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("conflicts_detected", mode="before")
    @classmethod
    def _clean_conflicts(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list):
            return [str(item).strip() for item in value if str(item).strip()]
        return value


class ChatMessage(BaseModel):
    role: str
    content: str


class ReplyResult(BaseModel):
    """Reply generator answer: either ``content`` or ``error`` with ``code``."""

    content: str | None = None
    error: str | None = None
    code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None


__all__ = [
    "ChatMessage",
    "ExistingMemory",
    "MemoryClassification",
    "ReplyResult",
    "VerificationResult",
]
