"""
Memory verifier: confirms a global candidate and looks for contradictions.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pydantic
from loguru import logger

from ..config.settings import AgentSettings
from ..schemas.agents import ExistingMemory, MemoryClassification, VerificationResult
from ..schemas.constants import MemoryType
from ..utils.exceptions import MalformedResponseError, ValidationError
from .base import OpenAIAgent

VERIFY_MEMORY_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "verify_memory",
        "description": (
            "Verify and adjust a memory classification, detecting conflicts with "
            "existing memories."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "verified": {
                    "type": "boolean",
                    "description": "True if the memory type and summary are accurate.",
                },
                "adjusted_memory_type": {
                    "type": ["string", "null"],
                    "enum": [member.value for member in MemoryType] + [None],
                    "description": "Corrected memory type, or null when unchanged.",
                },
                "adjusted_summary": {
                    "type": "string",
                    "description": "Improved summary, or the original when unchanged.",
                },
                "verification_explanation": {
                    "type": "string",
                    "description": "One sentence explaining the outcome.",
                },
                "conflicts_detected": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": (
                        "Conflicts with existing memories. Mention the id of the "
                        "conflicting memory, e.g. 'Conflicts with [id] preference "
                        "about dark mode'."
                    ),
                },
            },
            "required": [
                "verified",
                "adjusted_summary",
                "verification_explanation",
                "conflicts_detected",
            ],
            "additionalProperties": False,
        },
    },
}


def verification_prompt(classification: MemoryClassification) -> str:
    """Audit line stored with a verified memory."""

    return f"Type: {classification.memory_type.value}, Summary: {classification.short_summary}"


class MemoryVerifier(OpenAIAgent):
    """Checks a global candidate against every stored global memory."""

    agent_name = "verifier"

    SYSTEM_PROMPT = """You are a memory verification assistant. Your task is to:
1. Verify that the classified memory type and short summary are accurate.
2. Adjust the memory type or summary if needed for clarity or accuracy.
3. Detect conflicts with the existing memories, if any are listed.
4. Give a brief explanation of your verification.

Memory types:
- preference: likes/dislikes, style choices
- goal: objectives, plans, reminders
- health: medical info, allergies, wellness data
- biographical_fact: stable personal info (name, age, location, job)
- routine: habits, regular activities
- procedural_memory: how-to knowledge, learned skills
- relationship: information about other people"""

    @classmethod
    def from_settings(cls, settings: AgentSettings) -> MemoryVerifier:
        return cls(
            api_key=settings.openai_api_key,
            model=settings.verifier_model,
            base_url=settings.base_url,
            temperature=settings.temperature,
            timeout=settings.timeout_seconds,
        )

    def build_user_prompt(
        self,
        classification: MemoryClassification,
        existing: Sequence[ExistingMemory],
    ) -> str:
        lines = [
            "Verify this memory:",
            "",
            f"Memory type: {classification.memory_type.value}",
            f"Summary: {classification.short_summary}",
        ]
        if existing:
            lines += ["", "Existing memories:"]
            for memory in existing:
                prefix = f"[{memory.id}] " if memory.id else ""
                lines.append(
                    f"- {prefix}[{memory.memory_type.value}] {memory.short_summary}"
                )
        return "\n".join(lines)

    async def verify(
        self,
        classification: MemoryClassification,
        existing: Sequence[ExistingMemory],
    ) -> VerificationResult:
        if not classification.is_persistent:
            raise ValidationError(
                f"Only persistent memories can be verified, got {classification.memory_type.value}"
            )

        payload = await self.call_tool(
            [
                {"role": "system", "content": self.SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": self.build_user_prompt(classification, existing),
                },
            ],
            VERIFY_MEMORY_TOOL,
        )

        try:
            result = VerificationResult.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise MalformedResponseError(
                f"Verifier payload did not match the contract: {exc.error_count()} errors",
                agent=self.agent_name,
                context={"payload": payload},
            ) from exc

        logger.debug(
            f"Verification finished (verified={result.verified}, "
            f"{len(result.conflicts_detected)} conflicts)"
        )
        return result
