from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher

from file_market.bot.wiring import Services
from file_market.config import settings
from file_market.db.migrations import run_migrations
from file_market.db.session import dispose_engine

log = logging.getLogger(__name__)


async def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    await run_migrations()

    bot = Bot(token=settings.BOT_TOKEN)
    dp = Dispatcher()
    services = Services(settings)
    services.attach(dp)
    services.start_sweeper()

    try:
        # polling and webhook can't coexist
        await bot.delete_webhook(drop_pending_updates=False)
        log.info("Long polling started")
        await dp.start_polling(bot, allowed_updates=["message", "callback_query"])
    finally:
        await services.close()
        await bot.session.close()
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
