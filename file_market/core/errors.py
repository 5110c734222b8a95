from __future__ import annotations

from enum import Enum


class ShopError(Exception):
    """
    Base for every failure that is reported back to the user who triggered it.
    `text` is the short message shown in the chat; never broadcast.
    """

    text = "❌ Something went wrong."

    def __init__(self, text: str | None = None) -> None:
        if text:
            self.text = text
        super().__init__(self.text)


class SessionExpired(ShopError):
    text = "❌ Shop session expired."


class ItemNotFound(ShopError):
    text = "❌ Item not found or out of stock."


class SoldOut(ShopError):
    text = "❌ Item sold out."


class NoPaymentMethod(ShopError):
    text = "❌ No card available. Provide a card code."


class PaymentFailureReason(str, Enum):
    NETWORK = "network"
    ENDPOINT_MISSING = "endpoint_missing"
    LEDGER_REJECTED = "ledger_rejected"


class PaymentFailed(ShopError):
    text = "❌ Payment failed. Check card or balance."

    def __init__(self, reason: PaymentFailureReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        if reason == PaymentFailureReason.ENDPOINT_MISSING:
            super().__init__("❌ Payment service unavailable. Please contact admin.")
        elif reason == PaymentFailureReason.NETWORK:
            super().__init__("❌ Payment service did not respond. Try again later.")
        else:
            super().__init__()


class AlreadyVoted(ShopError):
    text = "❌ You already voted for every purchase from this shop."


class NoEligiblePurchase(ShopError):
    text = "❌ You must buy from this shop before voting."


class StorageFailure(ShopError):
    text = "❌ Storage error. Try again later."
