"""Per-utterance inputs and results of the memory pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..schemas.agents import MemoryClassification, VerificationResult
from ..schemas.records import ConflictRecord, MemoryRecord


class PipelineState(str, Enum):
    """States an utterance moves through. The last six are terminal."""

    RECEIVED = "received"
    CLASSIFYING = "classifying"
    VERIFYING = "verifying"
    DISCARDED = "discarded"
    PERSISTED_THREAD = "persisted_thread"
    PERSISTED_GLOBAL_VERIFIED = "persisted_global_verified"
    PERSISTED_GLOBAL_UNVERIFIED = "persisted_global_unverified"
    FAILED = "failed"
    DROPPED = "dropped"

    @property
    def is_terminal(self) -> bool:
        return self not in (
            PipelineState.RECEIVED,
            PipelineState.CLASSIFYING,
            PipelineState.VERIFYING,
        )


@dataclass(slots=True, frozen=True)
class UtteranceContext:
    """Everything the pipeline needs to know about one inbound utterance."""

    owner: str
    thread_id: str
    content: str
    message_id: int | None = None


@dataclass(slots=True)
class MemoryOutcome:
    state: PipelineState
    memory: MemoryRecord | None = None
    classification: MemoryClassification | None = None
    verification: VerificationResult | None = None
    conflicts: list[ConflictRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    history: list[PipelineState] = field(default_factory=list)

    @property
    def memory_scope(self) -> str:
        """``global``, ``thread`` or ``none`` when nothing was stored."""

        return self.memory.scope if self.memory is not None else "none"

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "memory_scope": self.memory_scope,
            "memory": self.memory.to_dict() if self.memory else None,
            "classification": (
                self.classification.model_dump(mode="json")
                if self.classification
                else None
            ),
            "verification": (
                self.verification.model_dump(mode="json") if self.verification else None
            ),
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
            "warnings": list(self.warnings),
            "error": self.error,
        }

    def message_tag(self) -> dict[str, Any]:
        """Metadata merged into the originating chat message."""

        return {
            "memoryScope": self.memory_scope,
            "memoryState": self.state.value,
            "memoryId": self.memory.id if self.memory else None,
            "classification": (
                self.classification.model_dump(mode="json")
                if self.classification
                else None
            ),
            "verification": (
                self.verification.model_dump(mode="json") if self.verification else None
            ),
        }
