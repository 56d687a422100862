"""Conversation pipeline: classify, assemble context, dispatch, package."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from anthropic import AsyncAnthropic
from groq import AsyncGroq

from .backends import AnthropicBackend, GroqBackend
from .classifier import QueryClassification, classify, default_classification
from .config import Settings
from .context import ContextAssembler, ContextBlock
from .dispatch import BackendUsed, Dispatcher, DispatchResult
from .live_data import LiveDataProvider
from .logging import get_logger
from .memory import ConversationTurn, FactExtractor, MemoryManager, MemoryStore
from .response import Chunk, ResponseAssembler

logger = logging.getLogger(__name__)


@dataclass
class PipelineReply:
    """Everything produced for one inbound message."""

    chunks: list[Chunk]
    classification: QueryClassification
    dispatch: DispatchResult
    context: ContextBlock

    @property
    def text(self) -> str:
        """The answer as produced by the dispatcher, before chunking."""
        return self.dispatch.text


class Pipeline:
    """Runs one message through the conversation pipeline.

    Instances hold no per-request state, so concurrent messages can share
    one pipeline. The memory store is the only shared mutable resource.
    """

    def __init__(
        self,
        memory: MemoryManager,
        context: ContextAssembler,
        dispatcher: Dispatcher,
        responder: ResponseAssembler,
        live_data: LiveDataProvider | None = None,
    ) -> None:
        self.memory = memory
        self.context = context
        self.dispatcher = dispatcher
        self.responder = responder
        self.live_data = live_data
        self.json_logger = get_logger()
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> Pipeline:
        """Wire up the production pipeline from settings."""
        assert settings.memory.db_path is not None
        store = MemoryStore(
            settings.memory.db_path,
            max_facts_per_user=settings.memory.max_facts_per_user,
            max_turns_per_user=settings.memory.max_turns_per_user,
        )
        store.init_db()

        extractor = FactExtractor(
            persist_response_chars=settings.memory.persist_response_chars,
            persist_specialist_chars=settings.memory.persist_specialist_chars,
        )
        memory = MemoryManager(
            store,
            extractor=extractor,
            persist_attempts=settings.memory.persist_attempts,
            persist_backoff_s=settings.memory.persist_backoff_s,
        )

        fast = GroqBackend(
            model=settings.dispatch.fast_model,
            client=AsyncGroq(api_key=settings.groq_api_key),
        )
        reasoning = AnthropicBackend(
            model=settings.dispatch.reasoning_model,
            client=AsyncAnthropic(api_key=settings.anthropic_api_key),
        )

        return cls(
            memory=memory,
            context=ContextAssembler(memory, settings.context),
            dispatcher=Dispatcher(fast, reasoning, settings.dispatch),
            responder=ResponseAssembler(settings.response),
            live_data=LiveDataProvider(settings.live_data),
        )

    async def handle_message(
        self,
        user_id: str,
        text: str,
        *,
        has_attachment: bool = False,
    ) -> PipelineReply:
        """Produce the reply for one inbound message.

        Args:
            user_id: Sender identity.
            text: Message text, or text extracted from an attachment.
            has_attachment: Whether the text came from a document.

        Returns:
            The chunked reply plus the intermediate decisions.

        Raises:
            TypeError: If ``text`` is not a string.
        """
        if not isinstance(text, str):
            raise TypeError(f"message text must be str, got {type(text).__name__}")

        prior_context = await self.context.has_prior_context(user_id)
        try:
            classification = classify(text, prior_context, has_attachment)
        except Exception as e:
            logger.exception("Classification failed, using default")
            self.json_logger.log("classification_error", user_id=user_id, error=str(e))
            classification = default_classification(reason=f"classification error: {e}")

        self.json_logger.log_classification(
            user_id,
            classification.query_type.value,
            classification.complexity.label,
            classification.preferred_backend.value,
            specialized_function=(
                classification.specialized_function.value
                if classification.specialized_function
                else None
            ),
        )

        context = await self.context.assemble(user_id, text)

        live_data = ""
        if classification.needs_live_data and self.live_data is not None:
            live_data = await self.live_data.snapshot()

        result = await self.dispatcher.dispatch(
            text,
            classification,
            context,
            live_data=live_data,
            user_id=user_id,
        )
        chunks = self.responder.assemble(result.text, classification)

        return PipelineReply(
            chunks=chunks,
            classification=classification,
            dispatch=result,
            context=context,
        )

    def record_in_background(
        self,
        user_id: str,
        text: str,
        reply: PipelineReply,
        message_type: str = "text",
    ) -> asyncio.Task | None:
        """Schedule turn and fact persistence after the reply was delivered.

        Returns:
            The background task, or None when the exchange is not recorded
            (the static apology is never stored).
        """
        if reply.dispatch.backend_used is BackendUsed.STATIC:
            return None

        turn = ConversationTurn(
            user_id=user_id,
            user_message=text,
            model_response=reply.text,
            message_type=message_type,
            metadata={
                "query_type": reply.classification.query_type.value,
                "backend_used": reply.dispatch.backend_used.value,
                "model": reply.dispatch.model,
            },
        )
        task = asyncio.create_task(
            self.memory.record_exchange(turn, reply.classification.query_type)
        )
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Background persistence failed", exc_info=error)

    async def drain(self) -> None:
        """Wait for pending background persistence."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def close(self) -> None:
        """Flush background work and close the memory store."""
        await self.drain()
        self.memory.store.close()
