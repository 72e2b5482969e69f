"""
Conversation threads and their append-only message logs.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any

from loguru import logger

from ..database.models import DatabaseManager, Memory, Thread, ThreadMessage, utcnow
from ..schemas.constants import ROLE_VALUES, MemoryScope, MessageRole
from ..schemas.records import MessageRecord, ThreadRecord
from ..utils.exceptions import NotFoundError, ThreadNotFoundError, ValidationError
from .base import purge_memory_links, require_text, session_scope


def to_thread_record(row: Thread) -> ThreadRecord:
    return ThreadRecord(
        id=row.id,
        owner=row.owner,
        title=row.title,
        created_at=row.created_at,
        last_active_at=row.last_active_at,
    )


def to_message_record(row: ThreadMessage) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        thread_id=row.thread_id,
        role=row.role,
        content=row.content,
        created_at=row.created_at,
        metadata=dict(row.message_metadata or {}),
    )


class ThreadRegistry:
    """Creates, selects, titles and deletes threads for an owner."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def create_thread(self, owner: str) -> ThreadRecord:
        """Start an untitled thread; the first user message names it."""

        require_text(owner, "owner")
        now = utcnow()
        row = Thread(
            id=str(uuid.uuid4()),
            owner=owner,
            created_at=now,
            last_active_at=now,
        )
        with session_scope(self.db_manager, "creating thread") as session:
            session.add(row)
            session.commit()
            record = to_thread_record(row)
        logger.debug(f"Created thread {record.id} for {owner}")
        return record

    def get_thread(self, owner: str, thread_id: str) -> ThreadRecord:
        with session_scope(self.db_manager, "loading thread") as session:
            return to_thread_record(self._require(session, owner, thread_id))

    def thread_exists(self, owner: str, thread_id: str) -> bool:
        with session_scope(self.db_manager, "checking thread") as session:
            return self._find(session, owner, thread_id) is not None

    def get_latest(self, owner: str) -> ThreadRecord | None:
        """Most recently active thread, or ``None`` when the owner has none."""

        with session_scope(self.db_manager, "loading latest thread") as session:
            row = (
                session.query(Thread)
                .filter(Thread.owner == owner)
                .order_by(Thread.last_active_at.desc(), Thread.created_at.desc())
                .first()
            )
            return to_thread_record(row) if row is not None else None

    def list_threads(self, owner: str) -> list[ThreadRecord]:
        with session_scope(self.db_manager, "listing threads") as session:
            rows = (
                session.query(Thread)
                .filter(Thread.owner == owner)
                .order_by(Thread.last_active_at.desc(), Thread.created_at.desc())
                .all()
            )
            return [to_thread_record(row) for row in rows]

    def set_title(
        self,
        owner: str,
        thread_id: str,
        title: str,
        *,
        only_if_unset: bool = False,
    ) -> bool:
        """Set the thread title. Returns ``False`` when an existing title was kept."""

        title = require_text(title, "title").strip()
        with session_scope(self.db_manager, "setting thread title") as session:
            row = self._require(session, owner, thread_id)
            if only_if_unset and row.title:
                return False
            row.title = title
            session.commit()
        return True

    def delete_thread(self, owner: str, thread_id: str) -> int:
        """Delete the thread, its messages and its thread-scoped memories.

        Global memories that were first mentioned in the thread are kept.
        Returns the number of memories removed.
        """

        with session_scope(self.db_manager, "deleting thread") as session:
            row = self._require(session, owner, thread_id, lock=True)
            memory_ids = [
                memory_id
                for (memory_id,) in session.query(Memory.id).filter(
                    Memory.owner == owner,
                    Memory.thread_id == thread_id,
                    Memory.scope == MemoryScope.THREAD.value,
                )
            ]
            purge_memory_links(session, owner, memory_ids)
            if memory_ids:
                session.query(Memory).filter(Memory.id.in_(memory_ids)).delete(
                    synchronize_session=False
                )
            session.query(ThreadMessage).filter(
                ThreadMessage.thread_id == thread_id
            ).delete(synchronize_session=False)
            session.delete(row)
            session.commit()

        logger.info(
            f"Deleted thread {thread_id} for {owner} with {len(memory_ids)} thread memories"
        )
        return len(memory_ids)

    def append_message(
        self,
        owner: str,
        thread_id: str,
        role: MessageRole | str,
        content: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> MessageRecord:
        role = getattr(role, "value", role)
        if role not in ROLE_VALUES:
            raise ValidationError(f"Unknown message role: {role}", context={"role": role})
        require_text(content, "content")

        with session_scope(self.db_manager, "appending message") as session:
            thread = self._require(session, owner, thread_id)
            now = utcnow()
            row = ThreadMessage(
                thread_id=thread_id,
                role=role,
                content=content,
                created_at=now,
                message_metadata=dict(metadata or {}),
            )
            session.add(row)
            thread.last_active_at = now
            session.commit()
            return to_message_record(row)

    def list_messages(
        self, owner: str, thread_id: str, limit: int | None = None
    ) -> list[MessageRecord]:
        """Messages in creation order; ``limit`` keeps only the most recent ones."""

        with session_scope(self.db_manager, "listing messages") as session:
            self._require(session, owner, thread_id)
            query = session.query(ThreadMessage).filter(
                ThreadMessage.thread_id == thread_id
            )
            if limit is not None:
                rows = query.order_by(ThreadMessage.id.desc()).limit(limit).all()
                rows.reverse()
            else:
                rows = query.order_by(ThreadMessage.id.asc()).all()
            return [to_message_record(row) for row in rows]

    def update_message_metadata(
        self, owner: str, message_id: int, patch: Mapping[str, Any]
    ) -> MessageRecord:
        """Merge ``patch`` into the message metadata."""

        with session_scope(self.db_manager, "tagging message") as session:
            row = (
                session.query(ThreadMessage)
                .join(Thread, Thread.id == ThreadMessage.thread_id)
                .filter(ThreadMessage.id == message_id, Thread.owner == owner)
                .one_or_none()
            )
            if row is None:
                raise NotFoundError(
                    f"Message {message_id} not found",
                    error_code="MESSAGE_NOT_FOUND",
                    context={"message_id": message_id},
                )
            merged = dict(row.message_metadata or {})
            merged.update(patch)
            # JSON columns only notice reassignment
            row.message_metadata = merged
            session.commit()
            return to_message_record(row)

    @staticmethod
    def _find(
        session, owner: str, thread_id: str, lock: bool = False
    ) -> Thread | None:
        query = session.query(Thread).filter(
            Thread.id == thread_id, Thread.owner == owner
        )
        if lock:
            query = query.with_for_update()
        return query.one_or_none()

    def _require(
        self, session, owner: str, thread_id: str, lock: bool = False
    ) -> Thread:
        row = self._find(session, owner, thread_id, lock)
        if row is None:
            raise ThreadNotFoundError(
                f"Thread {thread_id} not found", context={"thread_id": thread_id}
            )
        return row
