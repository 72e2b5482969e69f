"""
SQLAlchemy models for Recollect threads, messages, memories and conflicts.
"""

from __future__ import annotations

import json
import threading
from contextlib import nullcontext
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    event,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from ..schemas.constants import PERSISTENT_TYPE_VALUES, ROLE_VALUES, SCOPE_VALUES

Base: Any = declarative_base()

_clock_lock = threading.Lock()
_last_timestamp: datetime | None = None


def utcnow() -> datetime:
    """Naive UTC timestamp, strictly increasing within the process."""

    global _last_timestamp
    with _clock_lock:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


def _in_clause(column: str, values: frozenset[str]) -> str:
    quoted = ", ".join(f"'{value}'" for value in sorted(values))
    return f"{column} IN ({quoted})"


class Thread(Base):
    """One conversation belonging to an owner."""

    __tablename__ = "threads"

    id = Column(String(64), primary_key=True)
    owner = Column(String(255), nullable=False)
    title = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_active_at = Column(DateTime, nullable=False, default=utcnow)

    messages = relationship(
        "ThreadMessage",
        back_populates="thread",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ThreadMessage.id",
    )

    __table_args__ = (
        Index("idx_threads_owner_active", "owner", "last_active_at"),
    )


class ThreadMessage(Base):
    """Append-only message log entry of a thread."""

    __tablename__ = "thread_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_id = Column(
        String(64), ForeignKey("threads.id", ondelete="CASCADE"), nullable=False
    )
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    # "metadata" is reserved on declarative classes
    message_metadata = Column("metadata", JSON, nullable=False, default=dict)

    thread = relationship("Thread", back_populates="messages")

    __table_args__ = (
        CheckConstraint(_in_clause("role", ROLE_VALUES), name="ck_message_role"),
        Index("idx_thread_messages_thread", "thread_id", "id"),
    )


class Memory(Base):
    """A durable fact extracted from a conversation."""

    __tablename__ = "memories"

    id = Column(String(64), primary_key=True)
    owner = Column(String(255), nullable=False)
    # Informational for global memories, so no foreign key: they outlive the thread.
    thread_id = Column(String(64))
    memory_type = Column(String(50), nullable=False)
    scope = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    short_summary = Column(Text, nullable=False)
    confidence = Column(Float)
    verified = Column(Boolean, nullable=False, default=False)
    verification_prompt = Column(Text)
    verification_response = Column(Text)
    superseded_by = Column(String(64))
    expires_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(_in_clause("scope", SCOPE_VALUES), name="ck_memory_scope"),
        CheckConstraint(
            _in_clause("memory_type", PERSISTENT_TYPE_VALUES), name="ck_memory_type"
        ),
        CheckConstraint(
            "scope <> 'thread' OR thread_id IS NOT NULL",
            name="ck_memory_thread_scope",
        ),
        CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
            name="ck_memory_confidence",
        ),
        Index("idx_memories_owner_scope", "owner", "scope"),
        Index("idx_memories_thread", "thread_id"),
        Index("idx_memories_created", "created_at"),
    )


class MemoryConflict(Base):
    """A contradiction detected between a new memory and an existing one."""

    __tablename__ = "memory_conflicts"

    id = Column(String(64), primary_key=True)
    owner = Column(String(255), nullable=False)
    memory_a_id = Column(String(64), nullable=False)
    memory_b_id = Column(String(64))
    conflict_type = Column(Text, nullable=False)
    resolution_strategy = Column(Text)
    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_conflicts_owner_resolved", "owner", "resolved"),
        Index("idx_conflicts_memory_a", "memory_a_id"),
        Index("idx_conflicts_memory_b", "memory_b_id"),
    )


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or (
        database_url.startswith("sqlite") and "mode=memory" in database_url
    )


class DatabaseManager:
    """SQLAlchemy-based database manager"""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.session_lock: Any = nullcontext()
        engine_kwargs: dict[str, Any] = {
            "json_serializer": self._json_serializer,
            "json_deserializer": self._json_deserializer,
            "echo": echo,
        }
        if database_url.startswith("sqlite"):
            # Sessions are opened from worker threads as well.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if _is_memory_sqlite(database_url):
                engine_kwargs["poolclass"] = StaticPool
                # Every session shares the one connection, so they take turns.
                self.session_lock = threading.RLock()

        self.engine = create_engine(database_url, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def _json_serializer(self, obj):
        return json.dumps(obj, default=str, ensure_ascii=False)

    def _json_deserializer(self, value):
        return json.loads(value)

    def create_tables(self):
        """Create all tables"""
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    def get_database_info(self) -> dict[str, Any]:
        """Get database information"""
        return {
            "database_type": self.engine.dialect.name,
            "database_url": (
                self.database_url.split("@")[-1]
                if "@" in self.database_url
                else self.database_url
            ),
            "driver": self.engine.dialect.driver,
        }


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
