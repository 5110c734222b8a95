# file_market/main.py
from __future__ import annotations

import logging

from aiogram import Bot, Dispatcher
from aiogram.types import Update
from fastapi import FastAPI, HTTPException, Request

from file_market.bot.wiring import Services
from file_market.config import settings
from file_market.db.migrations import run_migrations
from file_market.db.session import dispose_engine

log = logging.getLogger(__name__)

app = FastAPI()

dp = Dispatcher()
services = Services(settings)
services.attach(dp)

_bot: Bot | None = None


@app.on_event("startup")
async def on_startup():
    global _bot
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    await run_migrations()
    services.start_sweeper()

    _bot = Bot(token=settings.BOT_TOKEN)

    if not settings.WEBHOOK_URL:
        log.warning("WEBHOOK_URL is empty: webhook not set (use `python -m file_market` for polling)")
        return

    webhook_full = settings.WEBHOOK_URL.rstrip("/") + settings.WEBHOOK_PATH
    try:
        info = await _bot.get_webhook_info()
        if (info.url or "").strip() == webhook_full:
            log.info("Webhook already set: %s", webhook_full)
            return
    except Exception as e:
        log.warning("getWebhookInfo failed: %s", e)

    await _bot.set_webhook(
        webhook_full,
        drop_pending_updates=False,
        allowed_updates=["message", "callback_query"],
    )
    log.info("Webhook set to %s", webhook_full)


@app.on_event("shutdown")
async def on_shutdown():
    await services.close()
    if _bot is not None:
        await _bot.session.close()
    await dispose_engine()


@app.get("/")
async def root():
    browse, uploads = services.sessions.counts()
    return {"ok": True, "service": "file_market", "sessions": browse, "pending_uploads": uploads}


@app.post(settings.WEBHOOK_PATH)
async def telegram_webhook(req: Request):
    if _bot is None:
        raise HTTPException(status_code=503, detail="bot not ready")

    data = await req.json()
    update = Update.model_validate(data, context={"bot": _bot})

    try:
        await dp.feed_update(_bot, update)
    except Exception as e:
        # 200 anyway, otherwise Telegram keeps retrying the same update
        log.exception("feed_update failed: %s", e)

    return {"ok": True}
