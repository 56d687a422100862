"""Text extraction from documents and voice notes."""

import logging
import time
from enum import Enum
from pathlib import PurePath

import groq
from groq import AsyncGroq

from .logging import UsageEvent, get_logger

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt", ".md", ".markdown", ".csv", ".json", ".log", ".tsv"}
MAX_EXTRACTED_CHARS = 20_000


class MediaKind(Enum):
    """Declared kind of an inbound attachment."""

    DOCUMENT = "document"
    VOICE = "voice"
    IMAGE = "image"


class ExtractionError(Exception):
    """Raised when an attachment cannot be turned into text."""

    def __init__(self, kind: MediaKind, reason: str) -> None:
        self.kind = kind
        self.reason = reason
        super().__init__(f"Cannot extract {kind.value}: {reason}")


class ExtractionService:
    """Turns raw attachment bytes into text the pipeline can handle."""

    def __init__(
        self,
        client: AsyncGroq | None = None,
        transcription_model: str = "whisper-large-v3-turbo",
        max_chars: int = MAX_EXTRACTED_CHARS,
    ) -> None:
        """Initialize the service.

        Args:
            client: Groq client used for voice transcription.
            transcription_model: Whisper model name.
            max_chars: Extracted text beyond this is cut.
        """
        self.client = client
        self.transcription_model = transcription_model
        self.max_chars = max_chars
        self.json_logger = get_logger()

    async def extract(self, data: bytes, kind: MediaKind, filename: str | None = None) -> str:
        """Extract text from an attachment.

        Args:
            data: Raw bytes.
            kind: Declared media kind.
            filename: Original file name, used to detect the format.

        Returns:
            Extracted text, truncated to ``max_chars``.

        Raises:
            ExtractionError: If the kind or format is unsupported, or
                extraction produced no text.
        """
        if not data:
            raise ExtractionError(kind, "empty attachment")

        if kind is MediaKind.DOCUMENT:
            text = self._decode_document(data, filename)
        elif kind is MediaKind.VOICE:
            text = await self._transcribe(data, filename or "voice.ogg")
        else:
            raise ExtractionError(kind, "unsupported media kind")

        text = text.strip()
        if not text:
            raise ExtractionError(kind, "no text found")
        return text[: self.max_chars]

    def _decode_document(self, data: bytes, filename: str | None) -> str:
        suffix = PurePath(filename).suffix.lower() if filename else ""
        if suffix not in TEXT_SUFFIXES:
            raise ExtractionError(MediaKind.DOCUMENT, f"unsupported file type '{suffix or 'unknown'}'")
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return data.decode("latin-1")

    async def _transcribe(self, data: bytes, filename: str) -> str:
        if self.client is None:
            raise ExtractionError(MediaKind.VOICE, "no transcription client configured")

        start_time = time.monotonic()
        try:
            transcription = await self.client.audio.transcriptions.create(
                file=(filename, data),
                model=self.transcription_model,
            )
        except groq.APIError as e:
            raise ExtractionError(MediaKind.VOICE, f"transcription failed: {e}") from e
        finally:
            self.json_logger.log_usage(UsageEvent(
                provider="groq",
                endpoint="audio.transcriptions",
                metrics={
                    "model": self.transcription_model,
                    "latency_ms": round((time.monotonic() - start_time) * 1000, 1),
                    "bytes": len(data),
                },
            ))

        return transcription.text or ""
