"""Data models for the memory system."""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any

_WHITESPACE = re.compile(r"\s+")


class Importance(IntEnum):
    """Importance tier of a fact. Higher values survive eviction longer."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: "str | int | Importance") -> "Importance":
        """Build an Importance from a label ('high') or a rank (2)."""
        if isinstance(value, str):
            return cls[value.strip().upper()]
        return cls(value)


IMPORTANCE_MARKERS = {
    Importance.CRITICAL: "🔴",
    Importance.HIGH: "🟡",
    Importance.MEDIUM: "🟢",
    Importance.LOW: "⚪",
}


def normalize_fact_text(text: str) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", text.strip().lower())


def content_hash(text: str) -> str:
    """SHA-256 of the normalized fact text, used for deduplication."""
    return hashlib.sha256(normalize_fact_text(text).encode("utf-8")).hexdigest()


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with microseconds."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class MemoryFact:
    """A durable statement about a user.

    Attributes:
        user_id: Owner of the fact.
        fact_text: Rendered fact, e.g. "User's name: Dara".
        importance: Tier used for ranking and eviction.
        category: Salient group ('identity', 'preference', 'goal', 'note', 'insight').
        content_hash: Hash of the normalized text.
        id: Database ID, None for unsaved facts.
        created_at: ISO timestamp when first stored.
        last_accessed: ISO timestamp of the latest duplicate write or read.
        access_count: Number of duplicate writes.
    """

    user_id: str
    fact_text: str
    importance: Importance = Importance.MEDIUM
    category: str = "other"
    content_hash: str = ""
    id: int | None = None
    created_at: str | None = None
    last_accessed: str | None = None
    access_count: int = 0


@dataclass(frozen=True)
class ConversationTurn:
    """One recorded (user message, model response) exchange."""

    user_id: str
    user_message: str
    model_response: str
    message_type: str = "text"
    timestamp: str = field(default_factory=utc_now)
    metadata: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
