"""
Shared plumbing for agents that talk to an OpenAI compatible endpoint.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import openai
from loguru import logger

from ..utils.exceptions import (
    MalformedResponseError,
    QuotaExceededError,
    RateLimitError,
    TransportError,
)


def strip_code_fences(text: str) -> str:
    """Remove markdown fences some models wrap around JSON output."""

    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


class OpenAIAgent:
    """Lazily builds an async client and maps provider failures to agent errors."""

    agent_name = "agent"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        *,
        base_url: str | None = None,
        temperature: float = 0.1,
        timeout: float = 60.0,
        client: Any | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._client = client
        logger.debug(f"{self.agent_name} agent initialized with model: {self.model}")

    @property
    def async_client(self) -> Any:
        if self._client is None:
            try:
                self._client = openai.AsyncOpenAI(
                    api_key=self.api_key, base_url=self.base_url, timeout=self.timeout
                )
            except openai.OpenAIError as exc:
                raise TransportError(
                    f"{self.agent_name} client could not be created: {exc}",
                    agent=self.agent_name,
                ) from exc
        return self._client

    async def _complete(self, **kwargs: Any) -> Any:
        try:
            return await self.async_client.chat.completions.create(
                model=self.model, **kwargs
            )
        except openai.APIStatusError as exc:
            raise self._map_status_error(exc) from exc
        except openai.APIConnectionError as exc:
            raise TransportError(
                f"{self.agent_name} service unreachable: {exc}", agent=self.agent_name
            ) from exc
        except openai.OpenAIError as exc:
            raise TransportError(
                f"{self.agent_name} call failed: {exc}", agent=self.agent_name
            ) from exc

    def _map_status_error(self, exc: openai.APIStatusError):
        status = getattr(exc, "status_code", None)
        context = {"status_code": status}
        if status == 429 or isinstance(exc, openai.RateLimitError):
            return RateLimitError(
                "Rate limits exceeded, please try again later.",
                agent=self.agent_name,
                context=context,
            )
        if status == 402:
            return QuotaExceededError(
                "Payment required by the model service.",
                agent=self.agent_name,
                context=context,
            )
        return TransportError(
            f"{self.agent_name} service error ({status})",
            agent=self.agent_name,
            context=context,
        )

    async def call_tool(
        self,
        messages: Sequence[dict[str, str]],
        tool: dict[str, Any],
    ) -> dict[str, Any]:
        """Force a single function call and return its decoded arguments."""

        name = tool["function"]["name"]
        completion = await self._complete(
            messages=list(messages),
            tools=[tool],
            tool_choice={"type": "function", "function": {"name": name}},
            temperature=self.temperature,
        )
        return self._extract_arguments(completion, name)

    def _extract_arguments(self, completion: Any, name: str) -> dict[str, Any]:
        try:
            message = completion.choices[0].message
        except (AttributeError, IndexError, TypeError) as exc:
            raise MalformedResponseError(
                f"{self.agent_name} returned no choices", agent=self.agent_name
            ) from exc

        raw: Any = None
        tool_calls = getattr(message, "tool_calls", None) or []
        for call in tool_calls:
            function = getattr(call, "function", None)
            if function is not None and getattr(function, "name", name) == name:
                raw = function.arguments
                break

        # Some OpenAI compatible servers ignore tool_choice and answer in text
        if raw is None:
            raw = getattr(message, "content", None)
            if isinstance(raw, str):
                raw = strip_code_fences(raw)

        if isinstance(raw, dict):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            raise MalformedResponseError(
                f"{self.agent_name} returned no structured output",
                agent=self.agent_name,
            )
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.debug(f"Raw {self.agent_name} response: {raw}")
            raise MalformedResponseError(
                f"{self.agent_name} returned invalid JSON: {exc}", agent=self.agent_name
            ) from exc
        if not isinstance(parsed, dict):
            raise MalformedResponseError(
                f"{self.agent_name} returned a non-object payload",
                agent=self.agent_name,
            )
        return parsed
