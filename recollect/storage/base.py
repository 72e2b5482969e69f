"""Shared session handling for the storage services."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from loguru import logger
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database.models import DatabaseManager, Memory, MemoryConflict, utcnow
from ..utils.exceptions import DatabaseError, ValidationError


@contextmanager
def session_scope(db_manager: DatabaseManager, action: str) -> Iterator[Session]:
    """Open a session and translate SQLAlchemy failures into ``DatabaseError``."""

    with db_manager.session_lock, db_manager.SessionLocal() as session:
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(f"Database error while {action}: {exc}")
            raise DatabaseError(
                f"Database error while {action}",
                context={"action": action, "detail": str(exc)},
            ) from exc


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{field} must be a non-empty string", context={"field": field}
        )
    return value


def purge_memory_links(session: Session, owner: str, memory_ids: list[str]) -> None:
    """Drop conflicts that mention ``memory_ids`` and unlink supersession pointers."""

    if not memory_ids:
        return
    session.query(MemoryConflict).filter(
        MemoryConflict.owner == owner,
        or_(
            MemoryConflict.memory_a_id.in_(memory_ids),
            MemoryConflict.memory_b_id.in_(memory_ids),
        ),
    ).delete(synchronize_session=False)
    session.query(Memory).filter(
        Memory.owner == owner,
        Memory.superseded_by.in_(memory_ids),
    ).update(
        {Memory.superseded_by: None, Memory.updated_at: utcnow()},
        synchronize_session=False,
    )
