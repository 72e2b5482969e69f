from .agents import (
    ChatMessage,
    ExistingMemory,
    MemoryClassification,
    ReplyResult,
    VerificationResult,
)
from .constants import (
    NON_PERSISTENT_LABELS,
    PERSISTENT_TYPE_VALUES,
    ClassifierLabel,
    MemoryScope,
    MemoryType,
    MessageRole,
)
from .records import ConflictRecord, MemoryRecord, MessageRecord, ThreadRecord

__all__ = [
    "ChatMessage",
    "ClassifierLabel",
    "ConflictRecord",
    "ExistingMemory",
    "MemoryClassification",
    "MemoryRecord",
    "MemoryScope",
    "MemoryType",
    "MessageRecord",
    "MessageRole",
    "NON_PERSISTENT_LABELS",
    "PERSISTENT_TYPE_VALUES",
    "ReplyResult",
    "ThreadRecord",
    "VerificationResult",
]
