"""
Model service agents used by the memory pipeline and the conversation surface
"""

from .base import OpenAIAgent
from .classifier import MemoryClassifier
from .reply_generator import ReplyGenerator
from .verifier import MemoryVerifier, verification_prompt

__all__ = [
    "MemoryClassifier",
    "MemoryVerifier",
    "OpenAIAgent",
    "ReplyGenerator",
    "verification_prompt",
]
