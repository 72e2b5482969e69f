"""
Database layer for Recollect
"""

from .models import (
    Base,
    DatabaseManager,
    Memory,
    MemoryConflict,
    Thread,
    ThreadMessage,
    utcnow,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "Memory",
    "MemoryConflict",
    "Thread",
    "ThreadMessage",
    "utcnow",
]
