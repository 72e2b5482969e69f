"""
Memory pipeline orchestrator.

Routes each utterance through classification, optional verification and a
persistence decision:

* ``ephemeral`` / ``irrelevant`` classifications are discarded.
* Persistent, non-global classifications are stored in thread scope without
  verification.
* Global candidates are verified against every stored global memory of the
  owner. A verifier failure or timeout still stores the memory globally, but
  unverified and without conflict checking.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Sequence

from loguru import logger

from ..agents.verifier import verification_prompt
from ..config.settings import OverlapPolicy
from ..schemas.agents import ExistingMemory, MemoryClassification, VerificationResult
from ..schemas.constants import MemoryScope, MemoryType
from ..schemas.records import ConflictRecord, MemoryRecord
from ..storage.conflict_ledger import ConflictLedger
from ..storage.memory_store import MemoryStore
from ..utils.exceptions import (
    AgentError,
    ExceptionHandler,
    NotFoundError,
    RecollectError,
    ThreadNotFoundError,
    ValidationError,
)
from .events import EventBus, MemoryOutcomeEvent
from .outcome import MemoryOutcome, PipelineState, UtteranceContext

STOPWORDS = frozenset(
    {
        "a", "about", "an", "and", "are", "as", "at", "be", "but", "by", "conflict",
        "conflicts", "for", "from", "has", "have", "i", "in", "is", "it", "its", "me",
        "my", "of", "on", "or", "that", "the", "their", "this", "to", "user", "was",
        "which", "with",
    }
)  # fmt: skip

_WORD_RE = re.compile(r"[a-z0-9]+")


def _words(text: str) -> set[str]:
    return {word for word in _WORD_RE.findall(text.lower()) if word not in STOPWORDS}


def word_overlap(text1: str, text2: str) -> float:
    """Jaccard similarity of the two texts' content words."""

    words1 = _words(text1)
    words2 = _words(text2)
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def pair_conflict(conflict_text: str, existing: Sequence[MemoryRecord]) -> str | None:
    """Pick the existing memory a conflict description refers to.

    An id quoted in the text wins; otherwise the memory with the highest word
    overlap. ``None`` when nothing overlaps.
    """

    for memory in existing:
        if memory.id and memory.id in conflict_text:
            return memory.id

    best_id: str | None = None
    best_score = 0.0
    for memory in existing:
        score = word_overlap(
            conflict_text, f"{memory.memory_type.replace('_', ' ')} {memory.short_summary}"
        )
        if score > best_score:
            best_id, best_score = memory.id, score
    return best_id


class MemoryPipeline:
    """Classification, verification and persistence for single utterances."""

    def __init__(
        self,
        memory_store: MemoryStore,
        conflict_ledger: ConflictLedger,
        classifier,
        verifier,
        *,
        event_bus: EventBus | None = None,
        verifier_timeout: float = 30.0,
        overlap_policy: OverlapPolicy | str = OverlapPolicy.QUEUE,
    ):
        self.memory_store = memory_store
        self.conflict_ledger = conflict_ledger
        self.classifier = classifier
        self.verifier = verifier
        self.event_bus = event_bus
        self.verifier_timeout = verifier_timeout
        self.overlap_policy = OverlapPolicy(overlap_policy)
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._pending: dict[tuple[str, str], int] = {}

    async def process(self, context: UtteranceContext) -> MemoryOutcome:
        """Run one utterance to a terminal state and publish the outcome."""

        self._validate(context)
        key = (context.owner, context.thread_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()

        if lock.locked() and self.overlap_policy is OverlapPolicy.DROP:
            logger.warning(
                f"Memory pipeline already running for thread {context.thread_id}; dropping utterance"
            )
            outcome = MemoryOutcome(
                state=PipelineState.DROPPED,
                warnings=["Memory processing skipped because another message is still being processed."],
                history=[PipelineState.RECEIVED, PipelineState.DROPPED],
            )
            await asyncio.to_thread(self._publish, context, outcome)
            return outcome

        self._pending[key] = self._pending.get(key, 0) + 1
        try:
            async with lock:
                outcome = await self._run(context)
        finally:
            self._pending[key] -= 1
            if self._pending[key] == 0:
                # Locks bind to the running loop, so idle ones are not kept around.
                del self._pending[key]
                del self._locks[key]

        # Subscribers write to the database too.
        await asyncio.to_thread(self._publish, context, outcome)
        return outcome

    async def _run(self, context: UtteranceContext) -> MemoryOutcome:
        history = [PipelineState.RECEIVED, PipelineState.CLASSIFYING]

        try:
            classification = await self.classifier.classify(context.content)
        except AgentError as exc:
            ExceptionHandler.log_exception(
                exc, level="WARNING", message=f"Classification failed: {exc}"
            )
            return MemoryOutcome(
                state=PipelineState.FAILED,
                error=exc.message,
                warnings=[ExceptionHandler.user_notice(exc)],
                history=history + [PipelineState.FAILED],
            )

        if not classification.is_persistent:
            logger.info(
                f"Discarded {classification.memory_type.value} utterance in thread "
                f"{context.thread_id}: {classification.reason}"
            )
            return MemoryOutcome(
                state=PipelineState.DISCARDED,
                classification=classification,
                history=history + [PipelineState.DISCARDED],
            )

        if not classification.is_global_candidate:
            return await self._persist(
                context,
                classification,
                history,
                scope=MemoryScope.THREAD,
                memory_type=MemoryType(classification.memory_type.value),
                summary=classification.short_summary,
                state=PipelineState.PERSISTED_THREAD,
            )

        history.append(PipelineState.VERIFYING)
        return await self._verify_and_persist(context, classification, history)

    async def _verify_and_persist(
        self,
        context: UtteranceContext,
        classification: MemoryClassification,
        history: list[PipelineState],
    ) -> MemoryOutcome:
        # Includes superseded memories.
        existing_records = await asyncio.to_thread(
            self.memory_store.list, context.owner, scope=MemoryScope.GLOBAL
        )
        existing = [
            ExistingMemory(
                id=record.id,
                memory_type=record.memory_type,
                short_summary=record.short_summary,
            )
            for record in existing_records
        ]

        verification: VerificationResult | None = None
        warnings: list[str] = []
        try:
            verification = await asyncio.wait_for(
                self.verifier.verify(classification, existing),
                timeout=self.verifier_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Verification timed out after {self.verifier_timeout}s; storing unverified"
            )
            warnings.append(
                "Conflict checking was skipped because verification timed out."
            )
        except AgentError as exc:
            ExceptionHandler.log_exception(
                exc, level="WARNING", message=f"Verification failed: {exc}"
            )
            warnings.append(
                f"Conflict checking was skipped: {ExceptionHandler.user_notice(exc)}"
            )

        if verification is None:
            return await self._persist(
                context,
                classification,
                history,
                scope=MemoryScope.GLOBAL,
                memory_type=MemoryType(classification.memory_type.value),
                summary=classification.short_summary,
                state=PipelineState.PERSISTED_GLOBAL_UNVERIFIED,
                warnings=warnings,
            )

        if not verification.verified:
            warnings.append("The memory was saved but could not be confirmed.")

        outcome = await self._persist(
            context,
            classification,
            history,
            scope=MemoryScope.GLOBAL,
            memory_type=verification.adjusted_memory_type
            or MemoryType(classification.memory_type.value),
            summary=verification.adjusted_summary or classification.short_summary,
            state=(
                PipelineState.PERSISTED_GLOBAL_VERIFIED
                if verification.verified
                else PipelineState.PERSISTED_GLOBAL_UNVERIFIED
            ),
            verification=verification,
            warnings=warnings,
        )
        if outcome.memory is not None:
            outcome.conflicts = await asyncio.to_thread(
                self._record_conflicts,
                context.owner,
                outcome.memory,
                verification,
                existing_records,
                warnings,
            )
        return outcome

    async def _persist(
        self,
        context: UtteranceContext,
        classification: MemoryClassification,
        history: list[PipelineState],
        *,
        scope: MemoryScope,
        memory_type: MemoryType,
        summary: str,
        state: PipelineState,
        verification: VerificationResult | None = None,
        warnings: list[str] | None = None,
    ) -> MemoryOutcome:
        warnings = warnings if warnings is not None else []

        try:
            memory = await asyncio.to_thread(
                self.memory_store.create,
                context.owner,
                memory_type=memory_type,
                scope=scope,
                content=context.content,
                short_summary=summary,
                thread_id=context.thread_id,
                confidence=classification.confidence,
                verified=bool(verification and verification.verified),
                verification_prompt=(
                    verification_prompt(classification) if verification else None
                ),
                verification_response=(
                    verification.model_dump_json() if verification else None
                ),
                require_thread=True,
            )
        except ThreadNotFoundError:
            logger.warning(
                f"Thread {context.thread_id} no longer exists for {context.owner}; dropping memory"
            )
            return MemoryOutcome(
                state=PipelineState.DROPPED,
                classification=classification,
                verification=verification,
                warnings=warnings,
                history=history + [PipelineState.DROPPED],
            )
        except RecollectError as exc:
            ExceptionHandler.log_exception(
                exc, message=f"Storing memory for thread {context.thread_id} failed: {exc}"
            )
            return MemoryOutcome(
                state=PipelineState.FAILED,
                classification=classification,
                verification=verification,
                warnings=warnings + ["The memory could not be saved."],
                error=exc.message,
                history=history + [PipelineState.FAILED],
            )

        logger.info(
            f"Memory {memory.id} stored as {state.value} ({memory.memory_type}) "
            f"for thread {context.thread_id}"
        )
        return MemoryOutcome(
            state=state,
            memory=memory,
            classification=classification,
            verification=verification,
            warnings=warnings,
            history=history + [state],
        )

    def _record_conflicts(
        self,
        owner: str,
        memory: MemoryRecord,
        verification: VerificationResult,
        existing: Sequence[MemoryRecord],
        warnings: list[str],
    ) -> list[ConflictRecord]:
        recorded: list[ConflictRecord] = []
        for text in verification.conflicts_detected:
            partner = pair_conflict(text, existing)
            try:
                try:
                    conflict = self.conflict_ledger.record(owner, memory.id, partner, text)
                except NotFoundError:
                    # Partner deleted while verification was running
                    conflict = self.conflict_ledger.record(owner, memory.id, None, text)
            except RecollectError as exc:
                ExceptionHandler.log_exception(
                    exc, message=f"Recording conflict for memory {memory.id} failed: {exc}"
                )
                warnings.append("A detected conflict could not be recorded.")
                continue
            recorded.append(conflict)
        return recorded

    @staticmethod
    def _validate(context: UtteranceContext) -> None:
        if not context.owner or not context.owner.strip():
            raise ValidationError("An owner is required")
        if not context.thread_id:
            raise ValidationError("A thread id is required")
        if not isinstance(context.content, str) or not context.content.strip():
            raise ValidationError("Cannot process an empty message")

    def _publish(self, context: UtteranceContext, outcome: MemoryOutcome) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(
            MemoryOutcomeEvent(
                owner=context.owner,
                thread_id=context.thread_id,
                message_id=context.message_id,
                outcome=outcome,
            )
        )
