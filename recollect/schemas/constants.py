from enum import Enum


class MemoryType(str, Enum):
    """Persistent memory categories."""

    PREFERENCE = "preference"
    GOAL = "goal"
    HEALTH = "health"
    BIOGRAPHICAL_FACT = "biographical_fact"
    ROUTINE = "routine"
    PROCEDURAL_MEMORY = "procedural_memory"
    RELATIONSHIP = "relationship"


class ClassifierLabel(str, Enum):
    """Every label the classifier may return, persistent or not."""

    PREFERENCE = "preference"
    GOAL = "goal"
    HEALTH = "health"
    BIOGRAPHICAL_FACT = "biographical_fact"
    ROUTINE = "routine"
    PROCEDURAL_MEMORY = "procedural_memory"
    RELATIONSHIP = "relationship"
    EPHEMERAL = "ephemeral"
    IRRELEVANT = "irrelevant"

    @property
    def is_persistent(self) -> bool:
        return self.value in PERSISTENT_TYPE_VALUES


class MemoryScope(str, Enum):
    GLOBAL = "global"
    THREAD = "thread"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


PERSISTENT_TYPE_VALUES = frozenset(member.value for member in MemoryType)
NON_PERSISTENT_LABELS = frozenset(
    {ClassifierLabel.EPHEMERAL.value, ClassifierLabel.IRRELEVANT.value}
)
SCOPE_VALUES = frozenset(member.value for member in MemoryScope)
ROLE_VALUES = frozenset(member.value for member in MessageRole)

__all__ = [
    "ClassifierLabel",
    "MemoryScope",
    "MemoryType",
    "MessageRole",
    "NON_PERSISTENT_LABELS",
    "PERSISTENT_TYPE_VALUES",
    "ROLE_VALUES",
    "SCOPE_VALUES",
]
