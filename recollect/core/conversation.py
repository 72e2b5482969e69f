"""
Conversation service: the per-utterance entry point.

Appends the user message, titles new threads, and then runs the memory
pipeline and the reply generator side by side so the reply never waits on
memory bookkeeping.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from ..schemas.agents import ChatMessage, ReplyResult
from ..schemas.constants import MemoryScope, MessageRole
from ..schemas.records import MemoryRecord, MessageRecord
from ..storage.memory_store import MemoryStore
from ..storage.thread_registry import ThreadRegistry
from ..utils.exceptions import (
    ExceptionHandler,
    NotFoundError,
    RecollectError,
    ValidationError,
)
from .events import EventBus, MemoryOutcomeEvent
from .outcome import MemoryOutcome, UtteranceContext
from .pipeline import MemoryPipeline


def derive_title(content: str, max_chars: int = 60) -> str:
    """Collapse whitespace and cut to ``max_chars`` including a trailing ``...``."""

    collapsed = " ".join(content.split())
    if len(collapsed) <= max_chars:
        return collapsed
    return collapsed[: max_chars - 3].rstrip() + "..."


@dataclass
class ChatTurnResult:
    """What the chat surface gets back as soon as the reply is ready."""

    user_message: MessageRecord
    reply: ReplyResult
    memory_task: asyncio.Task
    assistant_message: MessageRecord | None = None
    notices: list[str] = field(default_factory=list)

    async def memory_outcome(self) -> MemoryOutcome:
        return await self.memory_task

    def to_dict(self, outcome: MemoryOutcome | None = None) -> dict[str, Any]:
        notices = list(self.notices)
        if outcome is not None:
            notices.extend(outcome.warnings)
        data: dict[str, Any] = {
            "user_message": self.user_message.to_dict(),
            "assistant_message": (
                self.assistant_message.to_dict() if self.assistant_message else None
            ),
            "notices": notices,
        }
        if outcome is not None:
            data["memory_outcome"] = outcome.to_dict()
        return data


class ConversationService:
    def __init__(
        self,
        thread_registry: ThreadRegistry,
        memory_store: MemoryStore,
        pipeline: MemoryPipeline,
        reply_generator,
        *,
        event_bus: EventBus | None = None,
        title_max_chars: int = 60,
        history_limit: int = 20,
    ):
        self.thread_registry = thread_registry
        self.memory_store = memory_store
        self.pipeline = pipeline
        self.reply_generator = reply_generator
        self.title_max_chars = title_max_chars
        self.history_limit = history_limit
        self._subscription = event_bus.subscribe(self.tag_message) if event_bus else None

    async def send_message(
        self, owner: str, thread_id: str, content: str
    ) -> ChatTurnResult:
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content cannot be empty")

        user_message, history, global_memories, thread_memories = await asyncio.to_thread(
            self._record_user_message, owner, thread_id, content
        )

        memory_task = asyncio.create_task(
            self.pipeline.process(
                UtteranceContext(
                    owner=owner,
                    thread_id=thread_id,
                    content=content,
                    message_id=user_message.id,
                )
            )
        )
        memory_task.add_done_callback(_log_task_failure)

        reply = await self.reply_generator.generate(
            history, global_memories, thread_memories
        )
        result = ChatTurnResult(
            user_message=user_message, reply=reply, memory_task=memory_task
        )

        if not reply.ok:
            result.notices.append(f"The assistant could not reply: {reply.error}")
            return result

        try:
            result.assistant_message = await asyncio.to_thread(
                self.thread_registry.append_message,
                owner,
                thread_id,
                MessageRole.ASSISTANT,
                reply.content,
            )
        except NotFoundError:
            logger.info(f"Thread {thread_id} was deleted before the reply arrived")
            result.notices.append("The conversation was deleted before the reply arrived.")
        return result

    def _record_user_message(
        self, owner: str, thread_id: str, content: str
    ) -> tuple[MessageRecord, list[ChatMessage], list[MemoryRecord], list[MemoryRecord]]:
        thread = self.thread_registry.get_thread(owner, thread_id)
        user_message = self.thread_registry.append_message(
            owner, thread_id, MessageRole.USER, content
        )
        if thread.title is None:
            self.thread_registry.set_title(
                owner,
                thread_id,
                derive_title(content, self.title_max_chars),
                only_if_unset=True,
            )

        # Both branches see the memories as they are at dispatch time.
        global_memories = self.memory_store.list(owner, scope=MemoryScope.GLOBAL)
        thread_memories = self.memory_store.list(
            owner, scope=MemoryScope.THREAD, thread_id=thread_id
        )
        history = [
            ChatMessage(role=message.role, content=message.content)
            for message in self.thread_registry.list_messages(
                owner, thread_id, limit=self.history_limit
            )
            if message.role != MessageRole.SYSTEM.value
        ]
        return user_message, history, global_memories, thread_memories

    def tag_message(self, event: MemoryOutcomeEvent) -> None:
        """Write the outcome onto the user message it came from."""

        if event.message_id is None:
            return
        try:
            self.thread_registry.update_message_metadata(
                event.owner, event.message_id, event.outcome.message_tag()
            )
        except NotFoundError:
            logger.debug(f"Message {event.message_id} is gone; outcome not tagged")
        except RecollectError as exc:
            ExceptionHandler.log_exception(
                exc, level="WARNING", message=f"Tagging message {event.message_id} failed"
            )

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        ExceptionHandler.log_exception(exc, message=f"Memory pipeline crashed: {exc}")
