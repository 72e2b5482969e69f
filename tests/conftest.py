import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from recollect.config.manager import ConfigManager
from recollect.config.settings import RecollectSettings
from recollect.core.services import build_services
from recollect.schemas.agents import (
    MemoryClassification,
    ReplyResult,
    VerificationResult,
)

OWNER = "alice"


def classification(
    memory_type: str = "preference",
    *,
    is_global: bool = False,
    summary: str = "User prefers tea",
    confidence: float | None = 0.9,
    reason: str = "stub",
) -> MemoryClassification:
    return MemoryClassification(
        memory_type=memory_type,
        is_global_candidate=is_global,
        short_summary=summary,
        reason=reason,
        confidence=confidence,
    )


class FakeCompletions:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def fake_client(response=None, error=None):
    completions = FakeCompletions(response, error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def tool_response(name, arguments):
    call = SimpleNamespace(function=SimpleNamespace(name=name, arguments=arguments))
    message = SimpleNamespace(tool_calls=[call], content=None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def text_response(content):
    message = SimpleNamespace(tool_calls=None, content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class StubClassifier:
    """Returns canned classifications keyed by message text."""

    def __init__(self, results=None, default=None, delay: float = 0.0):
        self.results = dict(results or {})
        self.default = default
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def classify(self, message: str) -> MemoryClassification:
        self.calls.append(message)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            result = self.results.get(message, self.default)
            if isinstance(result, Exception):
                raise result
            if callable(result):
                return result(message)
            if result is None:
                return classification("irrelevant", summary="", reason="small talk")
            return result
        finally:
            self.active -= 1


class StubVerifier:
    def __init__(self, result=None, *, delay: float = 0.0, error: Exception | None = None):
        self.result = result
        self.delay = delay
        self.error = error
        self.calls: list[tuple] = []

    async def verify(self, classification, existing) -> VerificationResult:
        self.calls.append((classification, list(existing)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self.result):
            return self.result(classification, list(existing))
        if self.result is not None:
            return self.result
        return VerificationResult(
            verified=True,
            adjusted_memory_type=None,
            adjusted_summary=classification.short_summary,
            verification_explanation="Looks right",
            conflicts_detected=[],
        )


class StubReplyGenerator:
    def __init__(self, content: str = "Noted!", error: str | None = None):
        self.content = content
        self.error = error
        self.calls: list[dict] = []

    async def generate(self, messages, global_memories=(), thread_memories=()):
        self.calls.append(
            {
                "messages": list(messages),
                "global": list(global_memories),
                "thread": list(thread_memories),
            }
        )
        if self.error:
            return ReplyResult(error=self.error, code="AGENT_TRANSPORT_ERROR")
        return ReplyResult(content=self.content)


@pytest.fixture(autouse=True)
def reset_config_manager():
    ConfigManager._instance = None
    yield
    ConfigManager._instance = None


@pytest.fixture
def settings() -> RecollectSettings:
    return RecollectSettings(database={"connection_string": "sqlite:///:memory:"})


@pytest.fixture
def classifier() -> StubClassifier:
    return StubClassifier()


@pytest.fixture
def verifier() -> StubVerifier:
    return StubVerifier()


@pytest.fixture
def reply_generator() -> StubReplyGenerator:
    return StubReplyGenerator()


@pytest.fixture
def services(settings, classifier, verifier, reply_generator):
    built = build_services(
        settings,
        classifier=classifier,
        verifier=verifier,
        reply_generator=reply_generator,
    )
    yield built
    built.close()


@pytest.fixture
def store(services):
    return services.memory_store


@pytest.fixture
def registry(services):
    return services.thread_registry


@pytest.fixture
def ledger(services):
    return services.conflict_ledger


@pytest.fixture
def thread(registry):
    return registry.create_thread(OWNER)
