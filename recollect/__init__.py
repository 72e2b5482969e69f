"""
Recollect - conversational memory extraction with thread and global scopes.
"""

__version__ = "0.1.0"

from .config import ConfigManager, RecollectSettings
from .core import (
    ConversationService,
    EventBus,
    MemoryOutcome,
    MemoryPipeline,
    PipelineState,
    UtteranceContext,
    build_services,
)
from .database import DatabaseManager
from .schemas import (
    ClassifierLabel,
    MemoryClassification,
    MemoryScope,
    MemoryType,
    VerificationResult,
)
from .storage import ConflictLedger, MemoryStore, ThreadRegistry
from .utils import RecollectError

__all__ = [
    "ClassifierLabel",
    "ConfigManager",
    "ConflictLedger",
    "ConversationService",
    "DatabaseManager",
    "EventBus",
    "MemoryClassification",
    "MemoryOutcome",
    "MemoryPipeline",
    "MemoryScope",
    "MemoryStore",
    "MemoryType",
    "PipelineState",
    "RecollectError",
    "RecollectSettings",
    "ThreadRegistry",
    "UtteranceContext",
    "VerificationResult",
    "__version__",
    "build_services",
]
