"""CLI interface for Duet."""

import os

from .config import Settings, config_from_env
from .logging import configure_logger, get_logger
from .pipeline import Pipeline, PipelineReply

BANNER = """
╔══════════════════════════════════════════╗
║              🎼 Duet v0.1.0              ║
║   Two models, one conversation, memory   ║
╚══════════════════════════════════════════╝

Commands:
  /exit, /quit  - Exit the CLI
  /memory       - Show what Duet remembers about you
  /forget       - Erase your stored facts and history
  /help         - Show this help

Type your message and press Enter.
"""


class CLI:
    """Interactive command-line interface for Duet."""

    def __init__(
        self,
        pipeline: Pipeline,
        user_id: str | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.user_id = user_id or f"cli-{os.getenv('USER', 'local')}"
        self.logger = get_logger()

    def _format_reply(self, reply: PipelineReply) -> str:
        """Format a pipeline reply for display."""
        output = ["\n" + "─" * 40]
        output.extend(chunk.text for chunk in reply.chunks)
        output.append("─" * 40)
        output.append(
            f"[{reply.classification.query_type.value} · "
            f"{reply.classification.complexity.label} · "
            f"{reply.dispatch.backend_used.value} · "
            f"{reply.dispatch.elapsed_ms:.0f}ms]"
        )
        return "\n".join(output)

    async def _process_message(self, message: str) -> None:
        """Process a user message through the pipeline."""
        try:
            reply = await self.pipeline.handle_message(self.user_id, message)
        except Exception as e:
            print(f"\n❌ Error: {e}")
            self.logger.log("error", user_id=self.user_id, error=str(e))
            return

        print(self._format_reply(reply))
        self.pipeline.record_in_background(self.user_id, message, reply)

    def _show_memory(self) -> None:
        facts = self.pipeline.memory.get_facts(self.user_id).unwrap_or([])
        if not facts:
            print("\n(no stored facts)")
            return
        print(f"\n🧠 {len(facts)} fact(s):")
        print(self.pipeline.memory.format_facts(facts))

    async def _forget(self) -> None:
        await self.pipeline.drain()
        result = self.pipeline.memory.clear_user(self.user_id)
        if result.ok:
            print(f"\n🧹 Erased {result.value} stored item(s).")
        else:
            print(f"\n❌ Could not erase data: {result.error}")

    async def _handle_command(self, command: str) -> bool:
        """Handle a special command. Returns True if should continue, False to exit."""
        cmd = command.lower().strip()

        if cmd in ("/exit", "/quit", "exit", "quit"):
            print("\n👋 Goodbye!")
            self.logger.log("session_end", user_id=self.user_id)
            return False

        if cmd == "/memory":
            self._show_memory()
            return True

        if cmd == "/forget":
            await self._forget()
            return True

        if cmd == "/help":
            print(BANNER)
            return True

        return True  # Unknown command, continue

    async def run(self) -> None:
        """Run the interactive CLI."""
        print(BANNER)
        print(f"User: {self.user_id}\n")
        self.logger.log("session_start", user_id=self.user_id)

        try:
            while True:
                try:
                    user_input = input("you> ").strip()

                    if not user_input:
                        continue

                    if user_input.startswith("/") or user_input.lower() in ("exit", "quit"):
                        if not await self._handle_command(user_input):
                            break
                        continue

                    await self._process_message(user_input)

                except KeyboardInterrupt:
                    print("\n\n👋 Goodbye!")
                    self.logger.log("session_interrupt", user_id=self.user_id)
                    break

                except EOFError:
                    print("\n👋 Goodbye!")
                    break
        finally:
            await self.pipeline.close()


async def run_cli(settings: Settings | None = None) -> None:
    """Run the CLI with configuration from the environment."""
    configure_logger()
    settings = settings or config_from_env()

    if not settings.groq_api_key or not settings.anthropic_api_key:
        print("❌ Error: GROQ_API_KEY and ANTHROPIC_API_KEY must both be set")
        print("Please set them in your .env file or environment")
        return

    cli = CLI(Pipeline.from_settings(settings))
    await cli.run()
