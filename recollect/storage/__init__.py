"""
Storage services for Recollect
"""

from .conflict_ledger import ConflictLedger
from .memory_store import MemoryStore
from .thread_registry import ThreadRegistry

__all__ = ["ConflictLedger", "MemoryStore", "ThreadRegistry"]
