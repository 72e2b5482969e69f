"""
Core orchestration for Recollect
"""

from .conversation import ChatTurnResult, ConversationService, derive_title
from .events import EventAction, EventBus, MemoryOutcomeEvent
from .outcome import MemoryOutcome, PipelineState, UtteranceContext
from .pipeline import MemoryPipeline, pair_conflict, word_overlap
from .runner import BackgroundLoop
from .services import RecollectServices, build_services

__all__ = [
    "BackgroundLoop",
    "ChatTurnResult",
    "ConversationService",
    "EventAction",
    "EventBus",
    "MemoryOutcome",
    "MemoryOutcomeEvent",
    "MemoryPipeline",
    "PipelineState",
    "RecollectServices",
    "UtteranceContext",
    "build_services",
    "derive_title",
    "pair_conflict",
    "word_overlap",
]
