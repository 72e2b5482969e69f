"""
Detached views of stored rows handed out by the storage layer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(slots=True)
class MemoryRecord:
    id: str
    owner: str
    thread_id: str | None
    memory_type: str
    scope: str
    content: str
    short_summary: str
    confidence: float | None
    verified: bool
    verification_prompt: str | None
    verification_response: str | None
    superseded_by: str | None
    expires_at: datetime | None
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for key in ("expires_at", "created_at", "updated_at"):
            payload[key] = _iso(payload[key])
        return payload


@dataclass(slots=True)
class ThreadRecord:
    id: str
    owner: str
    title: str | None
    created_at: datetime
    last_active_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "title": self.title,
            "created_at": _iso(self.created_at),
            "last_active_at": _iso(self.last_active_at),
        }


@dataclass(slots=True)
class MessageRecord:
    id: int
    thread_id: str
    role: str
    content: str
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "role": self.role,
            "content": self.content,
            "created_at": _iso(self.created_at),
            "metadata": dict(self.metadata),
        }


@dataclass(slots=True)
class ConflictRecord:
    id: str
    owner: str
    memory_a_id: str
    memory_b_id: str | None
    conflict_type: str
    resolution_strategy: str | None
    resolved: bool
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for key in ("created_at", "updated_at", "resolved_at"):
            payload[key] = _iso(payload[key])
        return payload


__all__ = ["ConflictRecord", "MemoryRecord", "MessageRecord", "ThreadRecord"]
