"""Duet entry point."""

import asyncio
import logging
import sys

from dotenv import find_dotenv, load_dotenv

from .cli import run_cli

USAGE = "usage: duet [chat|bot]"


def main() -> None:
    """Main entry point."""
    load_dotenv(find_dotenv(usecwd=True))
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    command = sys.argv[1] if len(sys.argv) > 1 else "chat"

    if command == "bot":
        from .logging import configure_logger
        from .telegram import TelegramBot

        configure_logger()
        bot = TelegramBot()
        bot.run()
        return

    if command == "chat":
        asyncio.run(run_cli())
        return

    print(USAGE)
    sys.exit(2)


if __name__ == "__main__":
    main()
