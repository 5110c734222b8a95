from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from file_market.core.errors import (
    ItemNotFound,
    NoPaymentMethod,
    PaymentFailed,
    PaymentFailureReason,
    SessionExpired,
    SoldOut,
)
from file_market.core.ledger import LedgerClient, PayResult
from file_market.core.sessions import BrowseSession, SessionRegistry
from file_market.repo import ItemsRepo, PurchasesRepo, UsersRepo
from file_market.shared.money import from_sats

log = logging.getLogger(__name__)

Sender = Callable[["PurchaseReceipt"], Awaitable[Any]]


@dataclass(frozen=True)
class PurchaseReceipt:
    purchase_id: str
    item_id: str
    item_name: str
    filename: str
    file: bytes
    price_sats: int
    tx_id: str | None

    @property
    def summary(self) -> str:
        return (
            "🧾 Purchase Complete\n"
            f"Item: {self.item_name}\n"
            f"Price: {from_sats(self.price_sats)} coins\n"
            f"Transaction: {self.tx_id or 'N/A'}"
        )


class PurchaseService:
    """
    One purchase attempt, strictly sequential:
      session -> item -> seller account -> [reserve] -> pay -> [reserve] -> record -> receipt

    reserve_first=True (default): stock is taken with the conditional decrement before the card
    is charged and given back if every payment attempt fails, so a lost race never costs money.
    reserve_first=False: charge first, then decrement; losing the race after a captured payment
    ends in SoldOut and an error log with the ledger tx id.
    """

    def __init__(self, sessions: SessionRegistry, ledger: LedgerClient, *, reserve_first: bool = True) -> None:
        self.sessions = sessions
        self.ledger = ledger
        self.reserve_first = reserve_first

    def _require_session(self, buyer_id: str) -> BrowseSession:
        view = self.sessions.get_browse(buyer_id)
        if view is None:
            raise SessionExpired()
        return view

    async def _charge(self, buyer_id: str, card_code: str | None, to_id: str, price_sats: int) -> PayResult:
        result: PayResult | None = None

        # 1) card typed in by the buyer
        if card_code:
            result = await self.ledger.pay(card_code, to_id, price_sats)
            if result.success:
                return result

        # 2) fallback: stored card
        stored = await UsersRepo.get_card_code(buyer_id)
        if stored and stored != card_code:
            result = await self.ledger.pay(stored, to_id, price_sats)
            if result.success:
                return result

        if result is None:
            raise NoPaymentMethod()

        raise PaymentFailed(
            result.reason or PaymentFailureReason.LEDGER_REJECTED,
            result.error or "",
        )

    async def purchase(self, buyer_id: str, item_token: str, card_code: str | None = None) -> PurchaseReceipt:
        buyer_id = str(buyer_id)
        card_code = (card_code or "").strip() or None

        view = self._require_session(buyer_id)
        seller_id = view.owner_id

        token = (item_token or "").strip()
        if not token:
            raise ItemNotFound("❌ Please specify an item.")

        item = await ItemsRepo.find_item_by_name_or_index(seller_id, token)
        if not item or int(item.get("amount") or 0) <= 0:
            raise ItemNotFound()

        item_id = str(item["id"])
        price_sats = int(item["price_sats"])

        await UsersRepo.ensure_user(buyer_id)
        seller_card = await UsersRepo.get_card_code(seller_id)
        to_id = await self.ledger.resolve_destination_account(seller_id, seller_card)

        if self.reserve_first:
            if not await ItemsRepo.decrement_stock_if_available(item_id):
                raise SoldOut()
            try:
                # session may have run out while we were resolving
                self._require_session(buyer_id)
                pay = await self._charge(buyer_id, card_code, to_id, price_sats)
            except BaseException:
                await ItemsRepo.release_reservation(item_id)
                raise
        else:
            self._require_session(buyer_id)
            pay = await self._charge(buyer_id, card_code, to_id, price_sats)
            if not await ItemsRepo.decrement_stock_if_available(item_id):
                log.error(
                    "payment captured but item sold out: buyer=%s seller=%s item=%s tx=%s price_sats=%s",
                    buyer_id, seller_id, item_id, pay.tx_id, price_sats,
                )
                raise SoldOut()

        try:
            purchase = await PurchasesRepo.record_purchase(
                buyer_id=buyer_id,
                seller_id=seller_id,
                item_id=item_id,
                item_name=str(item["name"]),
                price_sats=price_sats,
                tx_id=pay.tx_id,
            )
        except Exception:
            log.exception(
                "sale not recorded after payment: buyer=%s seller=%s item=%s tx=%s price_sats=%s",
                buyer_id, seller_id, item_id, pay.tx_id, price_sats,
            )
            # the unit is paid for: it must not stay reserved forever
            try:
                await ItemsRepo.settle_reserved_unit(item_id)
            except Exception:
                log.exception("reserved unit left unsettled: item=%s tx=%s", item_id, pay.tx_id)
            raise

        log.info(
            "sale buyer=%s seller=%s item=%s price_sats=%s tx=%s",
            buyer_id, seller_id, item_id, price_sats, pay.tx_id,
        )

        return PurchaseReceipt(
            purchase_id=str(purchase["id"]),
            item_id=item_id,
            item_name=str(item["name"]),
            filename=str(item.get("original_filename") or item["name"]),
            file=bytes(item["file"]),
            price_sats=price_sats,
            tx_id=pay.tx_id,
        )

    async def deliver(self, receipt: PurchaseReceipt, primary: Sender, private: Sender | None = None) -> bool:
        """
        Primary reply first, then a private copy. Only the primary outcome matters.
        """
        delivered = True
        try:
            await primary(receipt)
        except Exception:
            log.exception("delivery failed purchase=%s", receipt.purchase_id)
            delivered = False

        if private is not None:
            try:
                await private(receipt)
            except Exception as e:
                log.debug("private delivery skipped purchase=%s: %r", receipt.purchase_id, e)

        return delivered
