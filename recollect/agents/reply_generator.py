"""
Conversational reply generation with the current memory set as context.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from loguru import logger

from ..config.settings import AgentSettings
from ..schemas.agents import ChatMessage, ReplyResult
from ..schemas.records import MemoryRecord
from ..utils.exceptions import AgentError, ExceptionHandler
from .base import OpenAIAgent


class ReplyGenerator(OpenAIAgent):
    """Produces the assistant turn. Failures come back as ``ReplyResult.error``."""

    agent_name = "reply"

    def __init__(self, *args: Any, max_tokens: int = 1024, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: AgentSettings) -> ReplyGenerator:
        return cls(
            api_key=settings.openai_api_key,
            model=settings.reply_model,
            base_url=settings.base_url,
            temperature=settings.reply_temperature,
            timeout=settings.timeout_seconds,
            max_tokens=settings.max_tokens,
        )

    def build_system_prompt(
        self,
        global_memories: Sequence[MemoryRecord],
        thread_memories: Sequence[MemoryRecord],
    ) -> str:
        sections = ["You are a helpful assistant with memory of the user."]
        if global_memories:
            sections.append("What you know about the user in every conversation:")
            sections.extend(
                f"- ({memory.memory_type}) {memory.short_summary}"
                for memory in global_memories
                if memory.superseded_by is None
            )
        if thread_memories:
            sections.append("What you learned earlier in this conversation:")
            sections.extend(
                f"- ({memory.memory_type}) {memory.short_summary}"
                for memory in thread_memories
                if memory.superseded_by is None
            )
        return "\n".join(sections)

    async def generate(
        self,
        messages: Sequence[ChatMessage | Mapping[str, str]],
        global_memories: Sequence[MemoryRecord] = (),
        thread_memories: Sequence[MemoryRecord] = (),
    ) -> ReplyResult:
        chat = [{"role": "system", "content": self.build_system_prompt(global_memories, thread_memories)}]
        for message in messages:
            if isinstance(message, ChatMessage):
                chat.append({"role": message.role, "content": message.content})
            else:
                chat.append({"role": message["role"], "content": message["content"]})

        try:
            completion = await self._complete(
                messages=chat,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except AgentError as exc:
            ExceptionHandler.log_exception(exc, level="WARNING")
            return ReplyResult(error=exc.message, code=exc.error_code)

        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError, TypeError):
            content = None
        if not content or not content.strip():
            logger.warning("Reply generator returned an empty answer")
            return ReplyResult(error="Empty reply", code="AGENT_MALFORMED_RESPONSE")
        return ReplyResult(content=content.strip())
