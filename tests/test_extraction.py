"""Tests for attachment text extraction."""

import json
from unittest.mock import AsyncMock, MagicMock

import groq
import httpx
import pytest

from duet.extraction import ExtractionError, ExtractionService, MediaKind


@pytest.fixture
def groq_client() -> AsyncMock:
    client = AsyncMock()
    transcription = MagicMock()
    transcription.text = " Remind me to check the riel rate. "
    client.audio.transcriptions.create.return_value = transcription
    return client


class TestDocuments:
    """Tests for document decoding."""

    @pytest.mark.asyncio
    async def test_utf8_text(self):
        text = await ExtractionService().extract("Budget: ៛ 40,000\n".encode(), MediaKind.DOCUMENT, "notes.txt")
        assert text == "Budget: ៛ 40,000"

    @pytest.mark.asyncio
    async def test_latin1_fallback(self):
        text = await ExtractionService().extract("café".encode("latin-1"), MediaKind.DOCUMENT, "menu.md")
        assert text == "café"

    @pytest.mark.asyncio
    async def test_unsupported_suffix(self):
        with pytest.raises(ExtractionError) as exc_info:
            await ExtractionService().extract(b"%PDF-1.7", MediaKind.DOCUMENT, "report.pdf")
        assert "'.pdf'" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_missing_filename(self):
        with pytest.raises(ExtractionError):
            await ExtractionService().extract(b"data", MediaKind.DOCUMENT)

    @pytest.mark.asyncio
    async def test_truncated_to_max_chars(self):
        service = ExtractionService(max_chars=10)
        text = await service.extract(b"x" * 50, MediaKind.DOCUMENT, "big.txt")
        assert text == "x" * 10

    @pytest.mark.asyncio
    async def test_whitespace_only(self):
        with pytest.raises(ExtractionError) as exc_info:
            await ExtractionService().extract(b"   \n ", MediaKind.DOCUMENT, "blank.txt")
        assert exc_info.value.reason == "no text found"


class TestVoice:
    """Tests for voice transcription."""

    @pytest.mark.asyncio
    async def test_transcribes(self, groq_client: AsyncMock, json_log):
        service = ExtractionService(client=groq_client, transcription_model="whisper-test")

        text = await service.extract(b"OggS...", MediaKind.VOICE, "note.ogg")

        assert text == "Remind me to check the riel rate."
        kwargs = groq_client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["file"] == ("note.ogg", b"OggS...")
        assert kwargs["model"] == "whisper-test"

        with open(json_log.log_path) as f:
            events = [json.loads(line) for line in f]
        assert events[-1]["extra"]["endpoint"] == "audio.transcriptions"

    @pytest.mark.asyncio
    async def test_api_error(self, groq_client: AsyncMock):
        groq_client.audio.transcriptions.create.side_effect = groq.APIConnectionError(
            request=httpx.Request("POST", "https://api.groq.com")
        )
        service = ExtractionService(client=groq_client)

        with pytest.raises(ExtractionError) as exc_info:
            await service.extract(b"OggS...", MediaKind.VOICE)

        assert exc_info.value.kind is MediaKind.VOICE

    @pytest.mark.asyncio
    async def test_no_client(self):
        with pytest.raises(ExtractionError):
            await ExtractionService().extract(b"OggS...", MediaKind.VOICE)


class TestOtherKinds:
    """Tests for unsupported and empty attachments."""

    @pytest.mark.asyncio
    async def test_image_unsupported(self):
        with pytest.raises(ExtractionError) as exc_info:
            await ExtractionService().extract(b"\x89PNG", MediaKind.IMAGE, "chart.png")
        assert exc_info.value.reason == "unsupported media kind"

    @pytest.mark.asyncio
    async def test_empty_bytes(self):
        with pytest.raises(ExtractionError) as exc_info:
            await ExtractionService().extract(b"", MediaKind.DOCUMENT, "a.txt")
        assert exc_info.value.reason == "empty attachment"
