"""Backend selection, timeouts and the fallback chain."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..backends import Backend, BackendError, SpecializedBackend
from ..classifier import PreferredBackend, QueryClassification, QueryType
from ..config import DispatchConfig
from ..context import ContextBlock
from ..logging import get_logger
from ..result import Err, Ok, Result
from .prompt import build_fallback_prompt, build_system_prompt, format_dual_response

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "I apologize, but I'm experiencing technical difficulties right now. "
    "Please try again in a moment."
)


class DispatchStage(Enum):
    """States of the dispatch state machine."""

    SELECT_PATH = "select_path"
    ATTEMPT_PRIMARY = "attempt_primary"
    ATTEMPT_SECONDARY = "attempt_secondary"
    ATTEMPT_STATIC_FALLBACK = "attempt_static_fallback"
    DONE = "done"


class BackendUsed(str, Enum):
    """Which stage produced the final text."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    BOTH = "both"
    STATIC = "static"
    LOCAL = "local"


@dataclass
class DispatchResult:
    """Outcome of a dispatch. Always carries text."""

    text: str
    backend_used: BackendUsed
    elapsed_ms: float
    model: str | None = None
    attempts: list[str] = field(default_factory=list)


@dataclass
class DispatchPlan:
    """Backends chosen in SELECT_PATH."""

    primary: list[Backend]
    secondary: Backend


class Dispatcher:
    """Runs a message through one or both backends with a fallback chain.

    SELECT_PATH -> ATTEMPT_PRIMARY -> ATTEMPT_SECONDARY ->
    ATTEMPT_STATIC_FALLBACK -> DONE. Each backend call has its own timeout
    and the whole dispatch shares one deadline. ``dispatch`` never raises.
    """

    def __init__(
        self,
        fast: Backend,
        reasoning: Backend,
        config: DispatchConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[tzinfo], datetime] | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            fast: Low-latency generalist backend.
            reasoning: High-capability reasoning backend.
            config: Timeouts, deadline and fallback sizing.
            clock: Monotonic time source for deadlines.
            now: Wall-clock source for local date/time answers.
        """
        self.fast = fast
        self.reasoning = reasoning
        self.config = config or DispatchConfig()
        self._clock = clock
        self._now = now or (lambda tz: datetime.now(tz))
        self.json_logger = get_logger()

    def plan(self, classification: QueryClassification) -> DispatchPlan:
        """SELECT_PATH: choose primary backend(s) and the secondary."""
        reasoning = self.reasoning
        if classification.specialized_function is not None:
            reasoning = SpecializedBackend(self.reasoning, classification.specialized_function)

        preferred = classification.preferred_backend
        if preferred is PreferredBackend.BOTH:
            return DispatchPlan(primary=[self.fast, reasoning], secondary=self.fast)
        if preferred is PreferredBackend.REASONING or classification.specialized_function:
            return DispatchPlan(primary=[reasoning], secondary=self.fast)
        return DispatchPlan(primary=[self.fast], secondary=self.reasoning)

    def _timeout_for(self, backend: Backend) -> float:
        root = backend.base if isinstance(backend, SpecializedBackend) else backend
        if root is self.reasoning:
            return self.config.reasoning_timeout_s
        return self.config.fast_timeout_s

    async def _call(
        self,
        backend: Backend,
        prompt: str,
        system: str,
        max_tokens: int,
        deadline: float,
    ) -> Result[str]:
        remaining = deadline - self._clock()
        if remaining <= 0:
            return Err("dispatch deadline exhausted", kind="deadline")

        timeout = min(self._timeout_for(backend), remaining)
        try:
            text = await backend.invoke(
                prompt,
                max_tokens=max_tokens,
                temperature=self.config.temperature,
                timeout_s=timeout,
                system=system,
            )
        except BackendError as e:
            return Err(str(e), kind=e.kind.value)
        except Exception as e:
            logger.exception(f"Unexpected error from {backend.name}")
            return Err(str(e), kind="unexpected")
        return Ok(text)

    async def dispatch(
        self,
        text: str,
        classification: QueryClassification,
        context: ContextBlock | str,
        *,
        live_data: str = "",
        user_id: str | None = None,
    ) -> DispatchResult:
        """Produce the answer text for a message.

        Args:
            text: The user's message.
            classification: Routing decision for the message.
            context: Assembled context block.
            live_data: Optional market snapshot for the system prompt.
            user_id: Used for logging only.

        Returns:
            The answer, which backend produced it and how long it took.
            When every stage fails the text is FALLBACK_MESSAGE.
        """
        start = self._clock()
        deadline = start + self.config.deadline_s
        attempts: list[str] = []
        context_text = context.text if isinstance(context, ContextBlock) else context

        def finish(answer: str, used: BackendUsed, model: str | None) -> DispatchResult:
            result = DispatchResult(
                text=answer,
                backend_used=used,
                elapsed_ms=(self._clock() - start) * 1000,
                model=model,
                attempts=attempts,
            )
            try:
                self.json_logger.log_dispatch(
                    used.value,
                    result.elapsed_ms,
                    user_id=user_id,
                    query_type=classification.query_type.value,
                    attempts=attempts,
                )
            except OSError as e:
                logger.warning(f"Could not write dispatch event: {e}")
            return result

        # SELECT_PATH
        if (
            classification.query_type is QueryType.DATETIME
            and self.config.answer_datetime_locally
        ):
            attempts.append(f"{DispatchStage.SELECT_PATH.value}:local")
            return finish(self.local_datetime_answer(), BackendUsed.LOCAL, None)

        plan = self.plan(classification)

        # ATTEMPT_PRIMARY
        system = build_system_prompt(context_text, classification, live_data)
        outcomes = await asyncio.gather(
            *(
                self._call(backend, text, system, classification.max_response_tokens, deadline)
                for backend in plan.primary
            )
        )
        succeeded: list[tuple[Backend, str]] = []
        for backend, outcome in zip(plan.primary, outcomes):
            status = "ok" if outcome.ok else outcome.kind
            attempts.append(f"{DispatchStage.ATTEMPT_PRIMARY.value}:{backend.name}:{status}")
            if outcome.ok:
                succeeded.append((backend, outcome.value))

        if len(plan.primary) == 1 and succeeded:
            backend, answer = succeeded[0]
            return finish(answer, BackendUsed.PRIMARY, backend.name)

        if succeeded:
            answer = format_dual_response([(b.label, t) for b, t in succeeded])
            used = BackendUsed.BOTH if len(succeeded) == len(plan.primary) else BackendUsed.PRIMARY
            return finish(answer, used, ",".join(b.name for b, _ in succeeded))

        # ATTEMPT_SECONDARY
        fallback_system = build_fallback_prompt(context_text, self.config.fallback_context_chars)
        max_tokens = min(classification.max_response_tokens, self.config.fallback_max_tokens)
        outcome = await self._call(plan.secondary, text, fallback_system, max_tokens, deadline)
        status = "ok" if outcome.ok else outcome.kind
        attempts.append(f"{DispatchStage.ATTEMPT_SECONDARY.value}:{plan.secondary.name}:{status}")
        if outcome.ok:
            return finish(outcome.value, BackendUsed.SECONDARY, plan.secondary.name)

        # ATTEMPT_STATIC_FALLBACK
        attempts.append(f"{DispatchStage.ATTEMPT_STATIC_FALLBACK.value}:static")
        logger.error(f"All backends failed: {attempts}")
        return finish(FALLBACK_MESSAGE, BackendUsed.STATIC, None)

    def local_datetime_answer(self) -> str:
        """Answer a date/time question without calling a backend."""
        try:
            tz: tzinfo = ZoneInfo(self.config.timezone)
            tz_name = self.config.timezone
        except ZoneInfoNotFoundError:
            logger.warning(f"Unknown timezone {self.config.timezone}, using UTC")
            tz, tz_name = timezone.utc, "UTC"

        now = self._now(tz)
        clock_time = now.strftime("%I:%M %p").lstrip("0")
        return f"It's {clock_time} on {now.strftime('%A, %d %B %Y')} ({tz_name})."
