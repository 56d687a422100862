"""Bounded context assembly from stored facts and recent turns."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ..config import ContextConfig
from ..logging import get_logger
from ..memory import IMPORTANCE_MARKERS, ConversationTurn, MemoryFact, MemoryManager
from ..result import Err, Result

logger = logging.getLogger(__name__)

# Salient fact groups, in rendering order.
FACT_GROUPS = (
    ("identity", "Identity"),
    ("preference", "Preferences"),
    ("goal", "Goals"),
    ("note", "Notes"),
    ("insight", "Insights"),
)
OTHER_GROUP = "Other"

MINIMAL_TEXT_CHARS = 100
SECTION_BREAK = "\n\n"


@dataclass(frozen=True)
class ContextBlock:
    """Rendered context handed to a backend.

    Attributes:
        text: The block itself, never longer than the configured budget.
        fact_count: Facts rendered into the block.
        turn_count: Turns rendered into the block.
        truncated: Whether the block was cut to fit the budget.
        degraded: Whether a fetch failed and the block is partial or minimal.
    """

    text: str
    fact_count: int = 0
    turn_count: int = 0
    truncated: bool = False
    degraded: bool = False

    def __len__(self) -> int:
        return len(self.text)


def _clip(text: str, limit: int) -> str:
    """Collapse whitespace and cut to ``limit`` chars with an ellipsis."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    if limit <= 3:
        return flat[:limit]
    return flat[: limit - 3].rstrip() + "..."


def fit_to_budget(text: str, budget: int) -> tuple[str, bool]:
    """Hard-truncate text to the budget, preferring a line boundary.

    Returns:
        The fitted text and whether it was cut.
    """
    if len(text) <= budget:
        return text, False
    if budget <= 0:
        return "", True
    cut = text[:budget]
    newline = cut.rfind("\n")
    if newline > budget // 2:
        cut = cut[:newline]
    return cut.rstrip(), True


class ContextAssembler:
    """Merges ranked facts and recent turns into a bounded context block."""

    def __init__(
        self,
        memory: MemoryManager,
        config: ContextConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.memory = memory
        self.config = config or ContextConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.json_logger = get_logger()

    async def _fetch(self, fn: Callable[..., Result[Any]], *args: Any) -> Result[Any]:
        """Run a blocking memory read under the store timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args),
                timeout=self.config.store_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"{fn.__name__} timed out after {self.config.store_timeout_s}s")
            return Err(f"{fn.__name__} timed out", kind="timeout")

    async def has_prior_context(self, user_id: str) -> bool:
        """Lightweight pre-pass: does the user have a meaningful history?"""
        result = await self._fetch(self.memory.count_turns, user_id)
        return result.unwrap_or(0) >= self.config.long_history_turns

    async def assemble(self, user_id: str, current_text: str) -> ContextBlock:
        """Build the context block for a request.

        Facts and turns are fetched in parallel. A failed fetch contributes
        nothing; if both fail, a minimal block is returned. This method
        never raises on storage problems.

        Args:
            user_id: Whose memory to load.
            current_text: The message being answered.

        Returns:
            A block whose text never exceeds ``config.budget_chars``.
        """
        facts_result, turns_result = await asyncio.gather(
            self._fetch(self.memory.get_facts, user_id, self.config.max_facts),
            self._fetch(self.memory.get_recent_turns, user_id, self.config.max_turns),
        )

        if not facts_result.ok and not turns_result.ok:
            self.json_logger.log(
                "context_degraded",
                user_id=user_id,
                error=f"facts: {facts_result.error}; turns: {turns_result.error}",
                minimal=True,
            )
            return self.minimal_block(user_id, current_text)

        if not facts_result.ok or not turns_result.ok:
            failed = facts_result if not facts_result.ok else turns_result
            self.json_logger.log(
                "context_degraded",
                user_id=user_id,
                error=failed.error,
                minimal=False,
            )

        facts: list[MemoryFact] = facts_result.unwrap_or([])
        turns: list[ConversationTurn] = turns_result.unwrap_or([])

        budget = self.config.budget_chars
        sections = [self._header(user_id)]

        candidates = self._select_facts(facts)
        room = budget - len(sections[0]) - len(SECTION_BREAK)
        rendered_facts = self._fit(candidates, self._render_facts, room)
        if rendered_facts:
            sections.append(self._render_facts(rendered_facts))

        room = budget - len(SECTION_BREAK.join(sections)) - len(SECTION_BREAK)
        rendered_turns = self._fit(turns, self._render_turns, room)
        if rendered_turns:
            sections.append(self._render_turns(rendered_turns))

        text, cut = fit_to_budget(SECTION_BREAK.join(sections), budget)
        truncated = (
            cut
            or len(rendered_facts) < len(candidates)
            or len(rendered_turns) < len(turns)
        )

        if rendered_facts:
            await self._fetch(self.memory.touch_facts, user_id, rendered_facts)

        return ContextBlock(
            text=text,
            fact_count=len(rendered_facts),
            turn_count=len(rendered_turns),
            truncated=truncated,
            degraded=not (facts_result.ok and turns_result.ok),
        )

    def minimal_block(self, user_id: str, current_text: str) -> ContextBlock:
        """Context used when no memory could be loaded."""
        text = "\n".join([
            f"User ID: {user_id}",
            f"Session: {self._clock().isoformat()}",
            f"Query: {_clip(current_text, MINIMAL_TEXT_CHARS)}",
        ])
        text, truncated = fit_to_budget(text, self.config.budget_chars)
        return ContextBlock(text=text, truncated=truncated, degraded=True)

    def _header(self, user_id: str) -> str:
        return f"[Context for user {user_id} | {self._clock().isoformat()}]"

    def _select_facts(self, facts: list[MemoryFact]) -> list[MemoryFact]:
        """Keep at most ``max_items_per_group`` facts per group, in rank order."""
        counts: dict[str, int] = {}
        selected = []
        for fact in facts:
            group = self._group_of(fact)
            if counts.get(group, 0) >= self.config.max_items_per_group:
                continue
            counts[group] = counts.get(group, 0) + 1
            selected.append(fact)
        return selected

    def _fit(self, items: list, render: Callable[[list], str], room: int) -> list:
        """Longest rank-order prefix of ``items`` whose rendering fits in ``room``.

        Lower-ranked items never displace higher-ranked ones: selection stops
        at the first item that does not fit.
        """
        kept: list = []
        for item in items:
            if len(render([*kept, item])) > room:
                break
            kept.append(item)
        return kept

    def _group_of(self, fact: MemoryFact) -> str:
        known = {key for key, _ in FACT_GROUPS}
        return fact.category if fact.category in known else OTHER_GROUP

    def _render_facts(self, facts: list[MemoryFact]) -> str:
        lines = ["What you know about the user:"]
        groups = [*FACT_GROUPS, (OTHER_GROUP, OTHER_GROUP)]
        for key, title in groups:
            members = [fact for fact in facts if self._group_of(fact) == key]
            if not members:
                continue
            lines.append(f"{title}:")
            lines.extend(
                f"- {IMPORTANCE_MARKERS[fact.importance]} {fact.fact_text}"
                for fact in members
            )
        return "\n".join(lines)

    def _render_turns(self, turns: list[ConversationTurn]) -> str:
        limit = self.config.turn_chars
        lines = ["Recent conversation (most recent first):"]
        for turn in turns:
            lines.append(f"- User: {_clip(turn.user_message, limit)}")
            lines.append(f"  Assistant: {_clip(turn.model_response, limit)}")
        return "\n".join(lines)
