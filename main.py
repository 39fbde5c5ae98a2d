"""
HomeBase Gear Guard — Entry Point.

Single entry point: `python main.py` starts the Telegram bot.
"""

import logging

from homebase.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from homebase.bot.telegram_bot import main

if __name__ == "__main__":
    main()
