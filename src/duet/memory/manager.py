"""Memory manager for orchestrating fact storage, retrieval and extraction."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import TYPE_CHECKING

from ..logging import get_logger
from ..result import Err, Ok, Result
from .extractor import FactCandidate, FactExtractor
from .models import IMPORTANCE_MARKERS, ConversationTurn, MemoryFact
from .store import MemoryStore

if TYPE_CHECKING:
    from ..classifier import QueryType

logger = logging.getLogger(__name__)


class MemoryManager:
    """Orchestrates memory operations: loading, formatting, and storage.

    Reads return ``Ok``/``Err`` so callers choose between degrading and
    escalating. Writes after a reply are retried a bounded number of times
    and then dropped.
    """

    def __init__(
        self,
        store: MemoryStore,
        extractor: FactExtractor | None = None,
        persist_attempts: int = 3,
        persist_backoff_s: float = 0.5,
    ) -> None:
        """Initialize the manager with a store and optional extractor.

        Args:
            store: The MemoryStore for persistence.
            extractor: FactExtractor used after each exchange.
            persist_attempts: Maximum attempts for a background write.
            persist_backoff_s: Base delay, doubled after each failed attempt.
        """
        self.store = store
        self.extractor = extractor or FactExtractor()
        self.persist_attempts = max(1, persist_attempts)
        self.persist_backoff_s = persist_backoff_s
        self.json_logger = get_logger()

    def get_facts(self, user_id: str, limit: int | None = None) -> Result[list[MemoryFact]]:
        """Load a user's facts in ranking order."""
        try:
            return Ok(self.store.get_facts(user_id, limit))
        except sqlite3.Error as e:
            logger.warning(f"Fact fetch failed for {user_id}: {e}")
            return Err(str(e), kind="storage")

    def get_recent_turns(self, user_id: str, limit: int) -> Result[list[ConversationTurn]]:
        """Load a user's most recent turns, newest first."""
        try:
            return Ok(self.store.get_recent_turns(user_id, limit))
        except sqlite3.Error as e:
            logger.warning(f"Turn fetch failed for {user_id}: {e}")
            return Err(str(e), kind="storage")

    def count_turns(self, user_id: str) -> Result[int]:
        """Count a user's stored turns."""
        try:
            return Ok(self.store.count_turns(user_id))
        except sqlite3.Error as e:
            logger.warning(f"Turn count failed for {user_id}: {e}")
            return Err(str(e), kind="storage")

    def touch_facts(self, user_id: str, facts: list[MemoryFact]) -> Result[int]:
        """Record that facts were surfaced to a prompt."""
        ids = [fact.id for fact in facts if fact.id is not None]
        try:
            return Ok(self.store.touch_facts(user_id, ids))
        except sqlite3.Error as e:
            logger.debug(f"Fact touch failed for {user_id}: {e}")
            return Err(str(e), kind="storage")

    def clear_user(self, user_id: str) -> Result[int]:
        """Erase every fact and turn for a user."""
        try:
            removed = self.store.clear_user(user_id)
        except sqlite3.Error as e:
            logger.error(f"Clearing data for {user_id} failed: {e}")
            return Err(str(e), kind="storage")
        self.json_logger.log("memory_cleared", user_id=user_id, rows=removed)
        return Ok(removed)

    def format_facts(self, facts: list[MemoryFact]) -> str:
        """Format facts as a bulleted list with importance markers.

        Args:
            facts: Facts to format, already ranked.

        Returns:
            One line per fact, or empty string if no facts.
        """
        return "\n".join(
            f"{IMPORTANCE_MARKERS[fact.importance]} {fact.fact_text}" for fact in facts
        )

    async def record_exchange(
        self,
        turn: ConversationTurn,
        query_type: QueryType | None = None,
    ) -> list[FactCandidate]:
        """Persist a finished exchange and the facts extracted from it.

        Runs after the reply has been delivered. Storage failures are
        retried with exponential backoff up to ``persist_attempts`` times,
        then logged and dropped. Nothing is raised to the caller.

        Args:
            turn: The exchange to append.
            query_type: Category of the user message, for the persist policy.

        Returns:
            The fact candidates that were written.
        """
        candidates: list[FactCandidate] = []
        if self.extractor.should_persist(turn.user_message, turn.model_response, query_type):
            candidates = self.extractor.extract(turn.user_message, turn.model_response)

        pending = list(candidates)
        turn_pending = True

        for attempt in range(1, self.persist_attempts + 1):
            try:
                if turn_pending:
                    await asyncio.to_thread(self.store.append_turn, turn)
                    turn_pending = False
                while pending:
                    candidate = pending[0]
                    await asyncio.to_thread(
                        self.store.upsert_fact,
                        turn.user_id,
                        candidate.fact_text,
                        candidate.importance,
                        candidate.category,
                    )
                    pending.pop(0)
            except sqlite3.Error as e:
                logger.warning(
                    f"Persisting exchange for {turn.user_id} failed "
                    f"(attempt {attempt}/{self.persist_attempts}): {e}"
                )
                if attempt == self.persist_attempts:
                    self.json_logger.log(
                        "persist_dropped",
                        user_id=turn.user_id,
                        error=str(e),
                        attempts=attempt,
                        facts_dropped=len(pending),
                    )
                    return [c for c in candidates if c not in pending]
                await asyncio.sleep(self.persist_backoff_s * 2 ** (attempt - 1))
            else:
                if candidates:
                    self.json_logger.log(
                        "facts_saved",
                        user_id=turn.user_id,
                        count=len(candidates),
                        labels=[c.label for c in candidates],
                    )
                return candidates

        return []
