"""Memory module for persistent per-user facts and conversation turns."""

from .extractor import FACT_RULES, FactCandidate, FactExtractor, FactRule
from .manager import MemoryManager
from .models import (
    IMPORTANCE_MARKERS,
    ConversationTurn,
    Importance,
    MemoryFact,
    content_hash,
    normalize_fact_text,
)
from .store import MemoryStore

__all__ = [
    "ConversationTurn",
    "FACT_RULES",
    "FactCandidate",
    "FactExtractor",
    "FactRule",
    "IMPORTANCE_MARKERS",
    "Importance",
    "MemoryFact",
    "MemoryManager",
    "MemoryStore",
    "content_hash",
    "normalize_fact_text",
]
