"""End-to-end tests for the conversation pipeline."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from duet.backends import Backend, BackendError, BackendErrorKind, Completion
from duet.classifier import QueryType
from duet.config import ContextConfig, DispatchConfig, ResponseConfig
from duet.context import ContextAssembler
from duet.dispatch import FALLBACK_MESSAGE, BackendUsed, Dispatcher
from duet.live_data import LiveDataProvider
from duet.memory import MemoryManager, MemoryStore
from duet.pipeline import Pipeline
from duet.response import ResponseAssembler
from duet.result import Err


class ScriptedBackend(Backend):
    """Backend returning a fixed answer and remembering its prompts."""

    provider = "scripted"

    def __init__(self, model: str, text: str = "answer", fail: bool = False) -> None:
        super().__init__(model, label=model)
        self.text = text
        self.fail = fail
        self.systems: list[str | None] = []

    async def _complete(self, prompt, max_tokens, temperature, system) -> Completion:
        self.systems.append(system)
        if self.fail:
            raise BackendError(self.name, BackendErrorKind.UNAVAILABLE, "down")
        return Completion(text=self.text)


@pytest.fixture
def store(tmp_path: Path) -> MemoryStore:
    store = MemoryStore(tmp_path / "memory.db")
    store.init_db()
    yield store
    store.close()


def make_pipeline(
    store: MemoryStore,
    fast: Backend,
    reasoning: Backend,
    live_data: LiveDataProvider | None = None,
) -> Pipeline:
    memory = MemoryManager(store, persist_backoff_s=0)
    return Pipeline(
        memory=memory,
        context=ContextAssembler(memory, ContextConfig()),
        dispatcher=Dispatcher(fast, reasoning, DispatchConfig(timezone="UTC")),
        responder=ResponseAssembler(ResponseConfig()),
        live_data=live_data,
    )


class TestHandleMessage:
    """Tests for Pipeline.handle_message."""

    @pytest.mark.asyncio
    async def test_general_question(self, store: MemoryStore):
        fast = ScriptedBackend("fast", text="Sunny and 32°C.")
        pipeline = make_pipeline(store, fast, ScriptedBackend("reasoning"))

        reply = await pipeline.handle_message("u1", "what's the weather")

        assert reply.classification.query_type is QueryType.GENERAL
        assert reply.dispatch.backend_used is BackendUsed.PRIMARY
        assert [c.text for c in reply.chunks] == ["Sunny and 32°C."]
        assert reply.text == "Sunny and 32°C."

    @pytest.mark.asyncio
    async def test_rejects_non_string(self, store: MemoryStore):
        pipeline = make_pipeline(store, ScriptedBackend("fast"), ScriptedBackend("reasoning"))

        with pytest.raises(TypeError):
            await pipeline.handle_message("u1", b"bytes")

    @pytest.mark.asyncio
    async def test_classifier_failure_uses_default(self, store: MemoryStore, monkeypatch):
        def broken_classify(*args, **kwargs):
            raise RuntimeError("bad rule")

        monkeypatch.setattr("duet.pipeline.classify", broken_classify)
        fast = ScriptedBackend("fast", text="still here")
        pipeline = make_pipeline(store, fast, ScriptedBackend("reasoning"))

        reply = await pipeline.handle_message("u1", "anything")

        assert reply.classification.query_type is QueryType.GENERAL
        assert reply.text == "still here"

    @pytest.mark.asyncio
    async def test_live_data_only_when_needed(self, store: MemoryStore):
        live = Mock(spec=LiveDataProvider)
        live.snapshot = AsyncMock(return_value="Live market snapshot:\nCrypto: BTC $67,000")
        fast = ScriptedBackend("fast")
        pipeline = make_pipeline(store, fast, ScriptedBackend("reasoning"), live_data=live)

        await pipeline.handle_message("u1", "what's the weather")
        live.snapshot.assert_not_awaited()

        await pipeline.handle_message("u1", "should I buy bitcoin?")
        live.snapshot.assert_awaited_once()
        assert "BTC $67,000" in fast.systems[-1]

    @pytest.mark.asyncio
    async def test_storage_outage_still_answers(self, store: MemoryStore):
        fast = ScriptedBackend("fast", text="fine")
        pipeline = make_pipeline(store, fast, ScriptedBackend("reasoning"))
        outage = Err("database is locked", kind="storage")
        pipeline.memory.get_facts = Mock(return_value=outage)
        pipeline.memory.get_recent_turns = Mock(return_value=outage)
        pipeline.memory.count_turns = Mock(return_value=outage)

        reply = await pipeline.handle_message("u1", "hello there friend")

        assert reply.text == "fine"
        assert reply.context.degraded
        assert "User ID: u1" in fast.systems[-1]

    @pytest.mark.asyncio
    async def test_datetime_answered_locally(self, store: MemoryStore):
        fast = ScriptedBackend("fast")
        pipeline = make_pipeline(store, fast, ScriptedBackend("reasoning"))

        reply = await pipeline.handle_message("u1", "what time is it?")

        assert reply.dispatch.backend_used is BackendUsed.LOCAL
        assert reply.text.startswith("It's ")
        assert fast.systems == []


class TestMemoryContinuity:
    """Tests for persistence across messages."""

    @pytest.mark.asyncio
    async def test_fact_available_in_next_message(self, store: MemoryStore):
        fast = ScriptedBackend("fast", text="Nice to meet you, Dara!")
        pipeline = make_pipeline(store, fast, ScriptedBackend("reasoning"))

        reply = await pipeline.handle_message("u1", "My name is Dara.")
        task = pipeline.record_in_background("u1", "My name is Dara.", reply)
        assert task is not None
        await pipeline.drain()

        await pipeline.handle_message("u1", "any plans for the weekend?")

        assert "User's name: Dara" in fast.systems[-1]
        assert "My name is Dara." in fast.systems[-1]

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, store: MemoryStore):
        fast = ScriptedBackend("fast")
        pipeline = make_pipeline(store, fast, ScriptedBackend("reasoning"))

        reply = await pipeline.handle_message("u1", "My name is Dara.")
        pipeline.record_in_background("u1", "My name is Dara.", reply)
        await pipeline.drain()

        await pipeline.handle_message("u2", "hello there friend")

        assert "Dara" not in fast.systems[-1]

    @pytest.mark.asyncio
    async def test_static_reply_not_recorded(self, store: MemoryStore):
        pipeline = make_pipeline(
            store, ScriptedBackend("fast", fail=True), ScriptedBackend("reasoning", fail=True)
        )

        reply = await pipeline.handle_message("u1", "My name is Dara.")

        assert reply.text == FALLBACK_MESSAGE
        assert pipeline.record_in_background("u1", "My name is Dara.", reply) is None
        assert store.count_turns("u1") == 0

    @pytest.mark.asyncio
    async def test_turn_metadata(self, store: MemoryStore):
        pipeline = make_pipeline(store, ScriptedBackend("fast"), ScriptedBackend("reasoning"))

        reply = await pipeline.handle_message("u1", "hello there friend")
        pipeline.record_in_background("u1", "hello there friend", reply, message_type="voice")
        await pipeline.drain()

        turn = store.get_recent_turns("u1", 1)[0]
        assert turn.message_type == "voice"
        assert turn.metadata["backend_used"] == "primary"
        assert turn.metadata["model"] == "scripted:fast"

    @pytest.mark.asyncio
    async def test_close_drains_background_work(self, store: MemoryStore):
        pipeline = make_pipeline(store, ScriptedBackend("fast"), ScriptedBackend("reasoning"))
        reply = await pipeline.handle_message("u1", "I prefer bonds")
        pipeline.record_in_background("u1", "I prefer bonds", reply)

        await pipeline.close()

        assert not pipeline._background
        store.init_db()
        assert store.count_facts("u1") == 1
