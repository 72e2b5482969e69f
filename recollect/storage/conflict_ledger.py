"""
Ledger of contradictions detected between memories.
"""

from __future__ import annotations

import uuid

from loguru import logger
from sqlalchemy import or_

from ..database.models import DatabaseManager, Memory, MemoryConflict, utcnow
from ..schemas.records import ConflictRecord
from ..utils.exceptions import ConflictNotFoundError, MemoryNotFoundError, ValidationError
from .base import require_text, session_scope


def to_conflict_record(row: MemoryConflict) -> ConflictRecord:
    return ConflictRecord(
        id=row.id,
        owner=row.owner,
        memory_a_id=row.memory_a_id,
        memory_b_id=row.memory_b_id,
        conflict_type=row.conflict_type,
        resolution_strategy=row.resolution_strategy,
        resolved=bool(row.resolved),
        created_at=row.created_at,
        updated_at=row.updated_at,
        resolved_at=row.resolved_at,
    )


class ConflictLedger:
    """Additive record of conflicts; resolution is always an explicit call."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def record(
        self,
        owner: str,
        memory_a_id: str,
        memory_b_id: str | None,
        conflict_type: str,
    ) -> ConflictRecord:
        """Record a conflict. ``memory_b_id`` is ``None`` for an unpaired conflict."""

        conflict_type = require_text(conflict_type, "conflict_type").strip()
        if memory_b_id is not None and memory_b_id == memory_a_id:
            raise ValidationError("A memory cannot conflict with itself")

        with session_scope(self.db_manager, "recording conflict") as session:
            for memory_id in (memory_a_id, memory_b_id):
                if memory_id is None:
                    continue
                exists = (
                    session.query(Memory.id)
                    .filter(Memory.id == memory_id, Memory.owner == owner)
                    .first()
                )
                if exists is None:
                    raise MemoryNotFoundError(
                        f"Memory {memory_id} not found",
                        context={"memory_id": memory_id},
                    )

            row = MemoryConflict(
                id=str(uuid.uuid4()),
                owner=owner,
                memory_a_id=memory_a_id,
                memory_b_id=memory_b_id,
                conflict_type=conflict_type,
                resolved=False,
            )
            session.add(row)
            session.commit()
            record = to_conflict_record(row)

        logger.info(
            f"Recorded conflict {record.id} between {memory_a_id} and {memory_b_id or 'unpaired'}"
        )
        return record

    def get(self, owner: str, conflict_id: str) -> ConflictRecord | None:
        with session_scope(self.db_manager, "loading conflict") as session:
            row = self._find(session, owner, conflict_id)
            return to_conflict_record(row) if row is not None else None

    def list_unresolved(self, owner: str) -> list[ConflictRecord]:
        with session_scope(self.db_manager, "listing conflicts") as session:
            rows = (
                session.query(MemoryConflict)
                .filter(
                    MemoryConflict.owner == owner,
                    MemoryConflict.resolved.is_(False),
                )
                .order_by(MemoryConflict.created_at.asc())
                .all()
            )
            return [to_conflict_record(row) for row in rows]

    def list_for_memory(self, owner: str, memory_id: str) -> list[ConflictRecord]:
        with session_scope(self.db_manager, "listing memory conflicts") as session:
            rows = (
                session.query(MemoryConflict)
                .filter(
                    MemoryConflict.owner == owner,
                    or_(
                        MemoryConflict.memory_a_id == memory_id,
                        MemoryConflict.memory_b_id == memory_id,
                    ),
                )
                .order_by(MemoryConflict.created_at.asc())
                .all()
            )
            return [to_conflict_record(row) for row in rows]

    def resolve(self, owner: str, conflict_id: str, strategy: str) -> ConflictRecord:
        strategy = require_text(strategy, "strategy").strip()
        with session_scope(self.db_manager, "resolving conflict") as session:
            row = self._find(session, owner, conflict_id)
            if row is None:
                raise ConflictNotFoundError(
                    f"Conflict {conflict_id} not found",
                    context={"conflict_id": conflict_id},
                )
            if row.resolved:
                raise ValidationError(
                    f"Conflict {conflict_id} is already resolved",
                    context={"conflict_id": conflict_id},
                )
            now = utcnow()
            row.resolved = True
            row.resolution_strategy = strategy
            row.resolved_at = now
            row.updated_at = now
            session.commit()
            record = to_conflict_record(row)

        logger.info(f"Resolved conflict {conflict_id} with strategy '{strategy}'")
        return record

    @staticmethod
    def _find(session, owner: str, conflict_id: str) -> MemoryConflict | None:
        return (
            session.query(MemoryConflict)
            .filter(MemoryConflict.id == conflict_id, MemoryConflict.owner == owner)
            .one_or_none()
        )
