"""
Owner-scoped CRUD over stored memories.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from loguru import logger

from ..database.models import DatabaseManager, Memory, Thread, utcnow
from ..schemas.constants import (
    NON_PERSISTENT_LABELS,
    PERSISTENT_TYPE_VALUES,
    MemoryScope,
    MemoryType,
)
from ..schemas.records import MemoryRecord
from ..utils.exceptions import (
    MemoryNotFoundError,
    ThreadNotFoundError,
    ValidationError,
)
from .base import purge_memory_links, require_text, session_scope


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def to_memory_record(row: Memory) -> MemoryRecord:
    return MemoryRecord(
        id=row.id,
        owner=row.owner,
        thread_id=row.thread_id,
        memory_type=row.memory_type,
        scope=row.scope,
        content=row.content,
        short_summary=row.short_summary,
        confidence=row.confidence,
        verified=bool(row.verified),
        verification_prompt=row.verification_prompt,
        verification_response=row.verification_response,
        superseded_by=row.superseded_by,
        expires_at=row.expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class MemoryStore:
    """Durable memory table. Every call is confined to one owner."""

    UPDATABLE_FIELDS = frozenset({"short_summary", "superseded_by"})

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def create(
        self,
        owner: str,
        *,
        memory_type: MemoryType | str,
        scope: MemoryScope | str,
        content: str,
        short_summary: str,
        thread_id: str | None = None,
        confidence: float | None = None,
        verified: bool = False,
        verification_prompt: str | None = None,
        verification_response: str | None = None,
        expires_at: datetime | None = None,
        require_thread: bool = False,
    ) -> MemoryRecord:
        """Insert a memory.

        With ``require_thread`` the owning thread is checked in the same
        transaction as the insert, and ``ThreadNotFoundError`` is raised if it
        is gone.
        """

        require_text(owner, "owner")
        memory_type = _enum_value(memory_type)
        scope = _enum_value(scope)
        self._validate(memory_type, scope, thread_id, confidence)
        require_text(content, "content")
        summary = require_text(short_summary, "short_summary").strip()

        row = Memory(
            id=str(uuid.uuid4()),
            owner=owner,
            thread_id=thread_id,
            memory_type=memory_type,
            scope=scope,
            content=content,
            short_summary=summary,
            confidence=confidence,
            verified=bool(verified),
            verification_prompt=verification_prompt,
            verification_response=verification_response,
            expires_at=expires_at,
        )
        with session_scope(self.db_manager, "creating memory") as session:
            if require_thread:
                thread = (
                    session.query(Thread.id)
                    .filter(Thread.id == thread_id, Thread.owner == owner)
                    .with_for_update()
                    .one_or_none()
                )
                if thread is None:
                    raise ThreadNotFoundError(
                        f"Thread {thread_id} not found",
                        context={"thread_id": thread_id},
                    )
            session.add(row)
            session.commit()
            record = to_memory_record(row)

        logger.debug(
            f"Stored {record.scope} memory {record.id} ({record.memory_type}) for {owner}"
        )
        return record

    def get(self, owner: str, memory_id: str) -> MemoryRecord | None:
        with session_scope(self.db_manager, "loading memory") as session:
            row = self._find(session, owner, memory_id)
            return to_memory_record(row) if row is not None else None

    def update(
        self, owner: str, memory_id: str, patch: Mapping[str, Any]
    ) -> MemoryRecord:
        """Apply a user edit. Only the summary text and the supersession link move."""

        unknown = set(patch) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                context={"fields": sorted(unknown)},
            )
        if not patch:
            raise ValidationError("Nothing to update")

        with session_scope(self.db_manager, "updating memory") as session:
            row = self._find(session, owner, memory_id)
            if row is None:
                raise MemoryNotFoundError(
                    f"Memory {memory_id} not found", context={"memory_id": memory_id}
                )

            if "short_summary" in patch:
                row.short_summary = require_text(
                    patch["short_summary"], "short_summary"
                ).strip()

            if "superseded_by" in patch:
                successor = patch["superseded_by"]
                if successor is not None:
                    require_text(successor, "superseded_by")
                    if successor == memory_id:
                        raise ValidationError("A memory cannot supersede itself")
                    if self._find(session, owner, successor) is None:
                        raise ValidationError(
                            f"Superseding memory {successor} does not exist",
                            context={"superseded_by": successor},
                        )
                row.superseded_by = successor

            row.updated_at = utcnow()
            session.commit()
            return to_memory_record(row)

    def supersede(self, owner: str, old_id: str, new_id: str) -> MemoryRecord:
        """Link ``old_id`` to the memory that replaces it."""

        return self.update(owner, old_id, {"superseded_by": new_id})

    def delete(self, owner: str, memory_id: str) -> None:
        with session_scope(self.db_manager, "deleting memory") as session:
            row = self._find(session, owner, memory_id)
            if row is None:
                raise MemoryNotFoundError(
                    f"Memory {memory_id} not found", context={"memory_id": memory_id}
                )
            purge_memory_links(session, owner, [memory_id])
            session.delete(row)
            session.commit()
        logger.info(f"Deleted memory {memory_id} for {owner}")

    def list(
        self,
        owner: str,
        scope: MemoryScope | str | None = None,
        thread_id: str | None = None,
    ) -> list[MemoryRecord]:
        scope = _enum_value(scope)
        if scope is not None and scope not in {s.value for s in MemoryScope}:
            raise ValidationError(f"Unknown scope: {scope}", context={"scope": scope})

        with session_scope(self.db_manager, "listing memories") as session:
            query = session.query(Memory).filter(Memory.owner == owner)
            if scope is not None:
                query = query.filter(Memory.scope == scope)
            if thread_id is not None:
                query = query.filter(Memory.thread_id == thread_id)
            rows = query.order_by(Memory.created_at.asc()).all()
            return [to_memory_record(row) for row in rows]

    @staticmethod
    def _find(session, owner: str, memory_id: str) -> Memory | None:
        return (
            session.query(Memory)
            .filter(Memory.id == memory_id, Memory.owner == owner)
            .one_or_none()
        )

    @staticmethod
    def _validate(
        memory_type: Any, scope: Any, thread_id: str | None, confidence: float | None
    ) -> None:
        if memory_type in NON_PERSISTENT_LABELS:
            raise ValidationError(
                f"'{memory_type}' utterances are never stored",
                context={"memory_type": memory_type},
            )
        if memory_type not in PERSISTENT_TYPE_VALUES:
            raise ValidationError(
                f"Unknown memory type: {memory_type}",
                context={"memory_type": memory_type},
            )
        if scope not in {s.value for s in MemoryScope}:
            raise ValidationError(f"Unknown scope: {scope}", context={"scope": scope})
        if scope == MemoryScope.THREAD.value and not thread_id:
            raise ValidationError("Thread scoped memories require a thread_id")
        if confidence is not None and not 0.0 <= float(confidence) <= 1.0:
            raise ValidationError(
                f"Confidence must lie in [0, 1], got {confidence}",
                context={"confidence": confidence},
            )
