"""Assembles the storage, agent and orchestration objects from settings."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from ..agents.classifier import MemoryClassifier
from ..agents.reply_generator import ReplyGenerator
from ..agents.verifier import MemoryVerifier
from ..config.settings import RecollectSettings
from ..database.models import DatabaseManager
from ..storage.conflict_ledger import ConflictLedger
from ..storage.memory_store import MemoryStore
from ..storage.thread_registry import ThreadRegistry
from .conversation import ConversationService
from .events import EventBus
from .pipeline import MemoryPipeline


@dataclass
class RecollectServices:
    settings: RecollectSettings
    db_manager: DatabaseManager
    memory_store: MemoryStore
    thread_registry: ThreadRegistry
    conflict_ledger: ConflictLedger
    event_bus: EventBus
    pipeline: MemoryPipeline
    conversation: ConversationService

    def close(self) -> None:
        self.conversation.close()
        self.event_bus.close()
        self.db_manager.dispose()


def build_services(
    settings: RecollectSettings | None = None,
    *,
    classifier=None,
    verifier=None,
    reply_generator=None,
    create_tables: bool = True,
) -> RecollectServices:
    """Wire everything together. Agents default to the OpenAI backed ones."""

    settings = settings or RecollectSettings()
    db_manager = DatabaseManager(
        settings.get_database_url(), echo=settings.database.echo_sql
    )
    if create_tables:
        db_manager.create_tables()

    memory_store = MemoryStore(db_manager)
    thread_registry = ThreadRegistry(db_manager)
    conflict_ledger = ConflictLedger(db_manager)
    event_bus = EventBus()

    pipeline = MemoryPipeline(
        memory_store,
        conflict_ledger,
        classifier or MemoryClassifier.from_settings(settings.agents),
        verifier or MemoryVerifier.from_settings(settings.agents),
        event_bus=event_bus,
        verifier_timeout=settings.agents.verifier_timeout_seconds,
        overlap_policy=settings.pipeline.overlap_policy,
    )
    conversation = ConversationService(
        thread_registry,
        memory_store,
        pipeline,
        reply_generator or ReplyGenerator.from_settings(settings.agents),
        event_bus=event_bus,
        title_max_chars=settings.pipeline.title_max_chars,
        history_limit=settings.pipeline.history_limit,
    )
    logger.debug(
        f"Services ready on {db_manager.get_database_info()['database_type']} database"
    )
    return RecollectServices(
        settings=settings,
        db_manager=db_manager,
        memory_store=memory_store,
        thread_registry=thread_registry,
        conflict_ledger=conflict_ledger,
        event_bus=event_bus,
        pipeline=pipeline,
        conversation=conversation,
    )
