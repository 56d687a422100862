"""SQLite storage for memory facts and conversation turns."""

import json
import sqlite3
import threading
from pathlib import Path

from .models import (
    ConversationTurn,
    Importance,
    MemoryFact,
    content_hash,
    utc_now,
)

# Ranking used for reads and eviction.
FACT_ORDER = "importance DESC, access_count DESC, created_at DESC, id DESC"

FACT_COLUMNS = (
    "id, user_id, fact_text, content_hash, importance, category, "
    "created_at, last_accessed, access_count"
)


class MemoryStore:
    """Persistent per-user storage using SQLite.

    Facts are deduplicated on (user_id, content_hash). Each user keeps at
    most ``max_facts_per_user`` facts and ``max_turns_per_user`` turns.

    The connection is shared across threads and guarded by a lock, so
    calls made through ``asyncio.to_thread`` are serialized and every
    upsert is atomic.
    """

    def __init__(
        self,
        db_path: Path,
        max_facts_per_user: int = 200,
        max_turns_per_user: int = 50,
    ) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
            max_facts_per_user: Eviction cap for facts.
            max_turns_per_user: Retention cap for conversation turns.
        """
        self.db_path = db_path
        self.max_facts_per_user = max_facts_per_user
        self.max_turns_per_user = max_turns_per_user
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the facts and turns tables if they don't exist."""
        with self._lock:
            conn = self._get_connection()
            conn.execute("""
                CREATE TABLE IF NOT EXISTS facts (
                    id             INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id        TEXT NOT NULL,
                    fact_text      TEXT NOT NULL,
                    content_hash   TEXT NOT NULL,
                    importance     INTEGER NOT NULL DEFAULT 1,
                    category       TEXT NOT NULL DEFAULT 'other',
                    created_at     TEXT NOT NULL,
                    last_accessed  TEXT NOT NULL,
                    access_count   INTEGER NOT NULL DEFAULT 0,
                    UNIQUE(user_id, content_hash)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS turns (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id         TEXT NOT NULL,
                    user_message    TEXT NOT NULL,
                    model_response  TEXT NOT NULL,
                    message_type    TEXT NOT NULL DEFAULT 'text',
                    timestamp       TEXT NOT NULL,
                    metadata        TEXT NOT NULL DEFAULT '{}'
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_facts_user ON facts(user_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_turns_user ON turns(user_id)")
            conn.commit()

    def upsert_fact(
        self,
        user_id: str,
        fact_text: str,
        importance: Importance = Importance.MEDIUM,
        category: str = "other",
    ) -> MemoryFact:
        """Save a fact, or bump the existing row if the same text is known.

        A duplicate write increments ``access_count`` by one, refreshes
        ``last_accessed`` and raises importance if the new tier is higher.
        Afterwards the user's facts are trimmed to the configured cap.

        Args:
            user_id: Owner of the fact.
            fact_text: The fact content.
            importance: Importance tier.
            category: Salient group for rendering.

        Returns:
            The stored fact. It may already have been evicted if it ranks
            below the cap.
        """
        now = utc_now()
        digest = content_hash(fact_text)
        with self._lock:
            conn = self._get_connection()
            cursor = conn.execute(
                f"""
                INSERT INTO facts (
                    user_id, fact_text, content_hash, importance, category,
                    created_at, last_accessed, access_count
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, 0)
                ON CONFLICT(user_id, content_hash) DO UPDATE SET
                    access_count = access_count + 1,
                    last_accessed = excluded.last_accessed,
                    importance = MAX(importance, excluded.importance)
                RETURNING {FACT_COLUMNS}
                """,
                (
                    user_id,
                    fact_text.strip(),
                    digest,
                    int(importance),
                    category,
                    now,
                    now,
                ),
            )
            row = cursor.fetchall()[0]
            self._evict(conn, user_id)
            conn.commit()
        return self._row_to_fact(row)

    def _evict(self, conn: sqlite3.Connection, user_id: str) -> int:
        """Keep only the top-ranked facts for a user. Caller holds the lock."""
        count = conn.execute(
            "SELECT COUNT(*) FROM facts WHERE user_id = ?", (user_id,)
        ).fetchone()[0]
        if count <= self.max_facts_per_user:
            return 0
        cursor = conn.execute(
            f"""
            DELETE FROM facts WHERE user_id = ? AND id NOT IN (
                SELECT id FROM facts WHERE user_id = ?
                ORDER BY {FACT_ORDER}
                LIMIT ?
            )
            """,
            (user_id, user_id, self.max_facts_per_user),
        )
        return cursor.rowcount

    def get_facts(self, user_id: str, limit: int | None = None) -> list[MemoryFact]:
        """Get a user's facts in ranking order.

        Args:
            user_id: Owner of the facts.
            limit: Maximum number of facts, None for all.

        Returns:
            Facts ordered by importance, access count, then recency.
        """
        with self._lock:
            conn = self._get_connection()
            cursor = conn.execute(
                f"SELECT {FACT_COLUMNS} FROM facts WHERE user_id = ? "
                f"ORDER BY {FACT_ORDER} LIMIT ?",
                (user_id, -1 if limit is None else limit),
            )
            return [self._row_to_fact(row) for row in cursor.fetchall()]

    def count_facts(self, user_id: str) -> int:
        """Number of facts stored for a user."""
        with self._lock:
            conn = self._get_connection()
            return conn.execute(
                "SELECT COUNT(*) FROM facts WHERE user_id = ?", (user_id,)
            ).fetchone()[0]

    def touch_facts(self, user_id: str, fact_ids: list[int]) -> int:
        """Mark facts as read by refreshing last_accessed.

        Returns:
            Number of facts updated.
        """
        if not fact_ids:
            return 0
        placeholders = ", ".join("?" for _ in fact_ids)
        with self._lock:
            conn = self._get_connection()
            cursor = conn.execute(
                f"""
                UPDATE facts SET last_accessed = ?
                WHERE user_id = ? AND id IN ({placeholders})
                """,
                (utc_now(), user_id, *fact_ids),
            )
            conn.commit()
            return cursor.rowcount

    def append_turn(self, turn: ConversationTurn) -> ConversationTurn:
        """Append a turn and purge the user's turns beyond the cap.

        Returns:
            The turn with its assigned id.
        """
        with self._lock:
            conn = self._get_connection()
            cursor = conn.execute(
                """
                INSERT INTO turns (
                    user_id, user_message, model_response, message_type,
                    timestamp, metadata
                )
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    turn.user_id,
                    turn.user_message,
                    turn.model_response,
                    turn.message_type,
                    turn.timestamp,
                    json.dumps(turn.metadata, ensure_ascii=False, default=str),
                ),
            )
            turn_id = cursor.lastrowid
            conn.execute(
                """
                DELETE FROM turns WHERE user_id = ? AND id NOT IN (
                    SELECT id FROM turns WHERE user_id = ?
                    ORDER BY id DESC
                    LIMIT ?
                )
                """,
                (turn.user_id, turn.user_id, self.max_turns_per_user),
            )
            conn.commit()
        return ConversationTurn(
            user_id=turn.user_id,
            user_message=turn.user_message,
            model_response=turn.model_response,
            message_type=turn.message_type,
            timestamp=turn.timestamp,
            metadata=turn.metadata,
            id=turn_id,
        )

    def get_recent_turns(self, user_id: str, limit: int) -> list[ConversationTurn]:
        """Get a user's most recent turns, newest first."""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.execute(
                """
                SELECT id, user_id, user_message, model_response, message_type,
                       timestamp, metadata
                FROM turns WHERE user_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (user_id, limit),
            )
            return [self._row_to_turn(row) for row in cursor.fetchall()]

    def count_turns(self, user_id: str) -> int:
        """Number of turns stored for a user."""
        with self._lock:
            conn = self._get_connection()
            return conn.execute(
                "SELECT COUNT(*) FROM turns WHERE user_id = ?", (user_id,)
            ).fetchone()[0]

    def clear_user(self, user_id: str) -> int:
        """Erase every fact and turn belonging to a user.

        Returns:
            Total number of rows deleted.
        """
        with self._lock:
            conn = self._get_connection()
            facts = conn.execute("DELETE FROM facts WHERE user_id = ?", (user_id,))
            turns = conn.execute("DELETE FROM turns WHERE user_id = ?", (user_id,))
            conn.commit()
            return facts.rowcount + turns.rowcount

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _row_to_fact(self, row: sqlite3.Row) -> MemoryFact:
        """Convert a database row to a MemoryFact."""
        return MemoryFact(
            id=row["id"],
            user_id=row["user_id"],
            fact_text=row["fact_text"],
            content_hash=row["content_hash"],
            importance=Importance(row["importance"]),
            category=row["category"],
            created_at=row["created_at"],
            last_accessed=row["last_accessed"],
            access_count=row["access_count"],
        )

    def _row_to_turn(self, row: sqlite3.Row) -> ConversationTurn:
        """Convert a database row to a ConversationTurn."""
        return ConversationTurn(
            id=row["id"],
            user_id=row["user_id"],
            user_message=row["user_message"],
            model_response=row["model_response"],
            message_type=row["message_type"],
            timestamp=row["timestamp"],
            metadata=json.loads(row["metadata"] or "{}"),
        )
