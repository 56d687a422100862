"""Telegram bot integration for Duet."""

import logging

from groq import AsyncGroq
from telegram import Message, Update
from telegram.constants import ChatAction, ParseMode
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..config import Settings, config_from_env
from ..dispatch import FALLBACK_MESSAGE
from ..extraction import ExtractionError, ExtractionService, MediaKind
from ..logging import get_logger
from ..pipeline import Pipeline
from ..response import Chunk

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = """
🎼 *Duet*

I'm an assistant for markets, personal finance and everyday questions, and I remember what you tell me between conversations.

*Commands:*
/start - Show this message
/help - Show this message
/memory - Show what I remember about you
/forget - Erase everything I remember about you

You can also send voice notes and text documents (.txt, .md, .csv, .json).
"""

MAX_MESSAGE_LENGTH = 4096

ACCESS_DENIED_MESSAGE = "⛔ Sorry, this bot is private."
NO_MEMORY_MESSAGE = "I don't remember anything about you yet."
FORGET_MESSAGE = "🧹 Done. I erased {count} stored item(s) about you."


def format_memory(lines: str, count: int) -> str:
    """Format the /memory listing."""
    return f"🧠 *What I remember* ({count}):\n\n{lines}"


async def send_chunks(message: Message, chunks: list[Chunk]) -> int:
    """Send chunks in order as separate replies.

    Returns:
        Number of messages sent.
    """
    sent = 0
    for chunk in chunks:
        if len(chunk.text) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"chunk {chunk.index}/{chunk.total} exceeds {MAX_MESSAGE_LENGTH} chars")
        await message.reply_text(chunk.text)
        sent += 1
    return sent


class TelegramBot:
    """Telegram bot for Duet."""

    def __init__(
        self,
        token: str | None = None,
        settings: Settings | None = None,
        pipeline: Pipeline | None = None,
        extraction: ExtractionService | None = None,
    ) -> None:
        self.settings = settings or config_from_env()
        self.token = token or self.settings.telegram_token
        if not self.token:
            raise ValueError("TELEGRAM_TOKEN not set")

        self.settings.response.max_unit_length = min(
            self.settings.response.max_unit_length, MAX_MESSAGE_LENGTH
        )
        self.pipeline = pipeline or Pipeline.from_settings(self.settings)
        self.extraction = extraction or ExtractionService(
            AsyncGroq(api_key=self.settings.groq_api_key),
            transcription_model=self.settings.transcription_model,
        )

        self.json_logger = get_logger()
        self._app: Application | None = None

    def _get_user_id(self, update: Update) -> str:
        """Get the sender's id as string, falling back to the chat id."""
        if update.effective_user is not None:
            return str(update.effective_user.id)
        assert update.effective_chat is not None
        return str(update.effective_chat.id)

    def _is_allowed(self, user_id: str) -> bool:
        allowed = self.settings.allowed_users
        return not allowed or user_id in allowed

    async def _check_access(self, update: Update) -> str | None:
        """Return the user id if allowed, otherwise reply and return None."""
        assert update.message is not None
        user_id = self._get_user_id(update)
        if self._is_allowed(user_id):
            return user_id
        self.json_logger.log("telegram_denied", user_id=user_id)
        await update.message.reply_text(ACCESS_DENIED_MESSAGE)
        return None

    async def _handle_start(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /start and /help."""
        assert update.message is not None
        user_id = await self._check_access(update)
        if user_id is None:
            return

        self.json_logger.log("telegram_start", user_id=user_id)

        await update.message.reply_text(
            WELCOME_MESSAGE,
            parse_mode=ParseMode.MARKDOWN,
        )

    async def _handle_memory(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /memory: list stored facts."""
        assert update.message is not None
        user_id = await self._check_access(update)
        if user_id is None:
            return

        facts = self.pipeline.memory.get_facts(user_id).unwrap_or([])
        if not facts:
            await update.message.reply_text(NO_MEMORY_MESSAGE)
            return

        listing = format_memory(self.pipeline.memory.format_facts(facts), len(facts))
        chunks = self.pipeline.responder.chunk(listing)
        await send_chunks(update.message, chunks)

    async def _handle_forget(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /forget: erase the user's facts and history."""
        assert update.message is not None
        user_id = await self._check_access(update)
        if user_id is None:
            return

        await self.pipeline.drain()
        result = self.pipeline.memory.clear_user(user_id)
        if result.ok:
            await update.message.reply_text(FORGET_MESSAGE.format(count=result.value))
        else:
            await update.message.reply_text(FALLBACK_MESSAGE)

    async def _respond(
        self,
        update: Update,
        user_id: str,
        text: str,
        *,
        has_attachment: bool = False,
        message_type: str = "text",
    ) -> None:
        """Run the pipeline, deliver the chunks, then record the exchange."""
        assert update.message is not None

        self.json_logger.log(
            "telegram_message",
            user_id=user_id,
            message_type=message_type,
            message_length=len(text),
        )

        try:
            await update.message.chat.send_action(ChatAction.TYPING)
            reply = await self.pipeline.handle_message(
                user_id, text, has_attachment=has_attachment
            )
            await send_chunks(update.message, reply.chunks)
        except Exception as e:
            logger.exception("Error processing message")
            self.json_logger.log("telegram_error", user_id=user_id, error=str(e))
            await update.message.reply_text(FALLBACK_MESSAGE)
            return

        self.pipeline.record_in_background(user_id, text, reply, message_type=message_type)

    async def _handle_message(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle incoming text messages."""
        assert update.message is not None
        assert update.message.text is not None

        user_id = await self._check_access(update)
        if user_id is None:
            return

        await self._respond(update, user_id, update.message.text)

    async def _handle_voice(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle voice notes by transcribing them first."""
        assert update.message is not None
        assert update.message.voice is not None

        user_id = await self._check_access(update)
        if user_id is None:
            return

        tg_file = await update.message.voice.get_file()
        data = bytes(await tg_file.download_as_bytearray())
        try:
            text = await self.extraction.extract(data, MediaKind.VOICE, "voice.ogg")
        except ExtractionError as e:
            self.json_logger.log("extraction_error", user_id=user_id, error=str(e))
            await update.message.reply_text(f"⚠️ I couldn't understand that voice note: {e.reason}")
            return

        await self._respond(update, user_id, text, message_type="voice")

    async def _handle_document(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle documents by extracting their text."""
        assert update.message is not None
        assert update.message.document is not None

        user_id = await self._check_access(update)
        if user_id is None:
            return

        document = update.message.document
        tg_file = await document.get_file()
        data = bytes(await tg_file.download_as_bytearray())
        try:
            extracted = await self.extraction.extract(
                data, MediaKind.DOCUMENT, document.file_name
            )
        except ExtractionError as e:
            self.json_logger.log("extraction_error", user_id=user_id, error=str(e))
            await update.message.reply_text(f"⚠️ I couldn't read that document: {e.reason}")
            return

        header = f"[Document: {document.file_name or 'attachment'}]"
        caption = (update.message.caption or "").strip()
        text = f"{caption}\n\n{header}\n{extracted}" if caption else f"{header}\n{extracted}"

        await self._respond(
            update, user_id, text, has_attachment=True, message_type="document"
        )

    async def _post_shutdown(self, application: Application) -> None:
        """Called after Application.shutdown()."""
        await self.pipeline.close()

    def build_app(self) -> Application:
        """Build the Telegram application."""
        self._app = (
            Application.builder()
            .token(self.token)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        # Add handlers
        self._app.add_handler(CommandHandler(["start", "help"], self._handle_start))
        self._app.add_handler(CommandHandler("memory", self._handle_memory))
        self._app.add_handler(CommandHandler("forget", self._handle_forget))
        self._app.add_handler(MessageHandler(filters.VOICE, self._handle_voice))
        self._app.add_handler(MessageHandler(filters.Document.ALL, self._handle_document))
        self._app.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_message)
        )

        return self._app

    def run(self) -> None:
        """Run the bot (blocking)."""
        app = self.build_app()

        logger.info("Starting Telegram bot...")
        app.run_polling()
