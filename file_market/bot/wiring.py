from __future__ import annotations

import asyncio
import logging

from aiogram import Dispatcher

from file_market.bot.handlers import router
from file_market.config import Settings, settings
from file_market.core.ledger import LedgerClient, RetryPolicy
from file_market.core.purchase import PurchaseService
from file_market.core.sessions import SessionRegistry, run_sweeper

log = logging.getLogger(__name__)


class Services:
    """
    Process-wide objects shared by the webhook app and the polling runner.
    """

    def __init__(self, cfg: Settings = settings) -> None:
        self.sessions = SessionRegistry(
            browse_ttl=cfg.BROWSE_SESSION_TTL_SECONDS,
            upload_ttl=cfg.UPLOAD_WINDOW_SECONDS,
        )
        self.ledger = LedgerClient(
            cfg.ledger_base,
            timeout=cfg.LEDGER_TIMEOUT_SECONDS,
            policy=RetryPolicy(max_retries=cfg.LEDGER_MAX_RETRIES),
        )
        self.purchases = PurchaseService(
            self.sessions,
            self.ledger,
            reserve_first=cfg.RESERVE_STOCK_BEFORE_PAYMENT,
        )
        self._cfg = cfg
        self._stop = asyncio.Event()
        self._sweeper: asyncio.Task | None = None

    def attach(self, dp: Dispatcher) -> Dispatcher:
        # handlers receive these by parameter name
        dp["sessions"] = self.sessions
        dp["purchases"] = self.purchases
        dp.include_router(router)
        return dp

    def start_sweeper(self) -> None:
        if self._sweeper and not self._sweeper.done():
            return
        self._stop.clear()
        self._sweeper = asyncio.create_task(
            run_sweeper(
                self.sessions,
                self._stop,
                session_interval=self._cfg.SESSION_SWEEP_SECONDS,
                upload_interval=self._cfg.UPLOAD_SWEEP_SECONDS,
            )
        )

    async def close(self) -> None:
        self._stop.set()
        if self._sweeper:
            try:
                await asyncio.wait_for(self._sweeper, timeout=5)
            except asyncio.TimeoutError:
                self._sweeper.cancel()
            self._sweeper = None
        await self.ledger.aclose()
        log.info("services closed")
