"""
Memory classifier: decides what kind of memory, if any, an utterance holds.
"""

from __future__ import annotations

from typing import Any

import pydantic
from loguru import logger

from ..config.settings import AgentSettings
from ..schemas.agents import MemoryClassification
from ..schemas.constants import ClassifierLabel
from ..utils.exceptions import MalformedResponseError, ValidationError
from .base import OpenAIAgent

CLASSIFY_MEMORY_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "classify_memory",
        "description": (
            "Classify a user message into one of the memory types for long-term "
            "recall and session management."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "memory_type": {
                    "type": "string",
                    "enum": [label.value for label in ClassifierLabel],
                    "description": (
                        "preference (likes/dislikes), goal (objectives, reminders), "
                        "health (medical info), biographical_fact (stable personal info), "
                        "routine (habits), procedural_memory (how-to knowledge), "
                        "relationship (info about others), ephemeral (temporary), "
                        "irrelevant (not worth remembering)."
                    ),
                },
                "is_global_candidate": {
                    "type": "boolean",
                    "description": "True if the memory should persist across all threads.",
                },
                "short_summary": {
                    "type": "string",
                    "description": (
                        "Very short normalized summary, e.g. "
                        "'User prefers minimalist design and dark mode'."
                    ),
                },
                "reason": {
                    "type": "string",
                    "description": "One sentence explaining the type and scope.",
                },
                "confidence": {
                    "type": "number",
                    "minimum": 0,
                    "maximum": 1,
                    "description": "Certainty of the classification between 0 and 1.",
                },
            },
            "required": [
                "memory_type",
                "is_global_candidate",
                "short_summary",
                "reason",
                "confidence",
            ],
            "additionalProperties": False,
        },
    },
}


class MemoryClassifier(OpenAIAgent):
    """Classifies single utterances with a forced ``classify_memory`` call."""

    agent_name = "classifier"

    SYSTEM_PROMPT = (
        "You classify user messages into structured memories for a chat assistant "
        "that can remember things across conversations. Treat future appointments, "
        "reminders and tasks as 'goal' memories and usually mark them as global "
        "candidates unless they clearly only matter to the current conversation. "
        "Long-term preferences, recurring routines and important personal facts are "
        "global candidates too. Short-lived or trivial details are 'ephemeral' or "
        "'irrelevant' and never global candidates."
    )

    @classmethod
    def from_settings(cls, settings: AgentSettings) -> MemoryClassifier:
        return cls(
            api_key=settings.openai_api_key,
            model=settings.classifier_model,
            base_url=settings.base_url,
            temperature=settings.temperature,
            timeout=settings.timeout_seconds,
        )

    async def classify(self, message: str) -> MemoryClassification:
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Cannot classify an empty message")

        payload = await self.call_tool(
            [
                {"role": "system", "content": self.SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        "Classify this message so we know whether to remember it "
                        f"globally, only in this thread, or not at all:\n\n{message}"
                    ),
                },
            ],
            CLASSIFY_MEMORY_TOOL,
        )

        try:
            classification = MemoryClassification.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise MalformedResponseError(
                f"Classifier payload did not match the contract: {exc.error_count()} errors",
                agent=self.agent_name,
                context={"payload": payload},
            ) from exc

        logger.debug(
            f"Classified message as {classification.memory_type.value} "
            f"(global candidate: {classification.is_global_candidate})"
        )
        return classification
