from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx

from file_market.core.errors import PaymentFailureReason
from file_market.shared.money import sats_to_coins

log = logging.getLogger(__name__)

TRANSFER_PATH = "/api/transfer/card"
CARD_INFO_PATH = "/api/card/info"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retries only when no response came back (connect error, timeout, dropped connection).
    Linear backoff: attempt 1 -> 1s, attempt 2 -> 2s.
    """
    max_retries: int = 2
    backoff_step: float = 1.0
    retry_on: tuple[type[BaseException], ...] = field(default=(httpx.TransportError,))

    def delay(self, attempt: int) -> float:
        return self.backoff_step * attempt

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        return attempt <= self.max_retries and isinstance(exc, self.retry_on)


@dataclass
class PayResult:
    success: bool
    tx_id: str | None = None
    date: str | None = None
    error: str | None = None
    status: int | None = None
    reason: PaymentFailureReason | None = None
    raw: dict[str, Any] | None = None


class LedgerClient:
    """
    Thin async client for the coin ledger:
      POST {base}/api/transfer/card {cardCode, toId, amount} -> {success, txId?, date?, error?}
      POST {base}/api/card/info     {cardCode}                -> {success, userId}
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.policy = policy or RetryPolicy()
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        url = f"{self.base_url}{path}"
        attempt = 0
        while True:
            try:
                return await self._client.post(url, json=payload)
            except Exception as e:
                attempt += 1
                if not self.policy.should_retry(e, attempt):
                    raise
                delay = self.policy.delay(attempt)
                log.warning("ledger %s network error (attempt %s), retry in %ss: %r", path, attempt, delay, e)
                await self._sleep(delay)

    @staticmethod
    def _json(resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def pay(self, card_code: str, to_id: str, amount_sats: int) -> PayResult:
        payload = {
            "cardCode": card_code,
            "toId": str(to_id),
            "amount": sats_to_coins(amount_sats),
        }
        try:
            resp = await self._post(TRANSFER_PATH, payload)
        except httpx.HTTPError as e:
            log.error("payment failed: no response from ledger: %r", e)
            return PayResult(
                success=False,
                error=str(e) or "Network error",
                reason=PaymentFailureReason.NETWORK,
            )

        data = self._json(resp)

        if resp.status_code == 404:
            log.error("payment failed: ledger endpoint not found (%s)", resp.request.url)
            return PayResult(
                success=False,
                error="API endpoint not found. Please contact admin.",
                status=404,
                reason=PaymentFailureReason.ENDPOINT_MISSING,
                raw=data,
            )

        if resp.is_success and data.get("success") is True:
            return PayResult(
                success=True,
                tx_id=str(data["txId"]) if data.get("txId") is not None else None,
                date=data.get("date") or datetime.now(timezone.utc).isoformat(),
                status=resp.status_code,
                raw=data,
            )

        error = data.get("error") or (resp.text if not resp.is_success else "") or "Payment failed"
        log.warning("payment rejected by ledger status=%s error=%s", resp.status_code, error)
        return PayResult(
            success=False,
            error=str(error),
            status=resp.status_code,
            reason=PaymentFailureReason.LEDGER_REJECTED,
            raw=data,
        )

    async def card_info(self, card_code: str) -> str | None:
        """
        Ledger user id that owns the card, or None.
        """
        try:
            resp = await self._post(CARD_INFO_PATH, {"cardCode": card_code})
        except httpx.HTTPError as e:
            log.warning("card info failed: %r", e)
            return None

        data = self._json(resp)
        if resp.is_success and data.get("success") and data.get("userId"):
            return str(data["userId"])
        return None

    async def resolve_destination_account(self, user_id: str, card_code: str | None) -> str:
        """
        Seller's ledger account: owner of the stored card when we have one,
        otherwise the platform id itself (the ledger accepts both).
        """
        if card_code:
            account = await self.card_info(card_code)
            if account:
                return account
        return str(user_id)
