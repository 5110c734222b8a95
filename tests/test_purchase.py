"""End-to-end purchase flow against a real sqlite store and a scripted ledger."""
import asyncio

import pytest

from file_market.core.errors import (
    ItemNotFound,
    NoPaymentMethod,
    PaymentFailed,
    PaymentFailureReason,
    SessionExpired,
    SoldOut,
)
from file_market.core.errors import StorageFailure
from file_market.core.purchase import PurchaseService
from file_market.db.session import db_fetch_all, db_fetch_one
from file_market.repo import ItemsRepo, PurchasesRepo, ShopsRepo, UsersRepo
from file_market.shared.money import to_sats

from conftest import BUYER, SELLER, FakeLedger


async def _widget(amount=3, price="2.5"):
    return await ItemsRepo.add_item(
        SELLER,
        name="Widget",
        price_sats=to_sats(price),
        amount=amount,
        filename="widget.zip",
        file_bytes=b"widget-bytes",
    )


async def _stock(item_id):
    return await db_fetch_one("SELECT amount, reserved FROM items WHERE id = :id", {"id": item_id})


@pytest.mark.asyncio
async def test_two_purchases_update_stock_history_and_stats(seller, registry):
    item = await _widget(amount=3)
    ledger = FakeLedger()
    service = PurchaseService(registry, ledger)
    registry.start_browse(BUYER, SELLER)

    first = await service.purchase(BUYER, "widget", "GOOD")
    second = await service.purchase(BUYER, "1", "GOOD")

    assert first.file == b"widget-bytes"
    assert first.filename == "widget.zip"
    assert first.price_sats == 250_000_000
    assert first.tx_id == "tx-1"
    assert second.tx_id == "tx-2"
    assert ledger.calls == [("GOOD", f"acct-{SELLER}", 250_000_000)] * 2

    assert await _stock(item["id"]) == {"amount": 1, "reserved": 0}
    assert len(await PurchasesRepo.list_for_buyer(BUYER)) == 2

    shop = await ShopsRepo.get(SELLER)
    assert shop["total_sales"] == 2
    assert shop["total_earned_sats"] == 500_000_000

    assert "Item: Widget" in first.summary
    assert "Price: 2.50000000 coins" in first.summary
    assert "Transaction: tx-1" in first.summary


@pytest.mark.asyncio
async def test_last_unit_deletes_item(seller, registry):
    item = await _widget(amount=1)
    service = PurchaseService(registry, FakeLedger())
    registry.start_browse(BUYER, SELLER)

    await service.purchase(BUYER, "1", "GOOD")

    assert await ItemsRepo.get_item(item["id"]) is None
    assert await ItemsRepo.count_items(SELLER) == 0


@pytest.mark.asyncio
async def test_concurrent_buyers_for_last_unit(seller, registry):
    item = await _widget(amount=1)
    # every buyer has found the item before anyone reserves it
    ledger = FakeLedger(resolve_barrier=5)
    service = PurchaseService(registry, ledger)

    buyers = [f"buyer-{i}" for i in range(5)]
    for b in buyers:
        registry.start_browse(b, SELLER)

    results = await asyncio.gather(
        *(service.purchase(b, "Widget", "GOOD") for b in buyers),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    assert len(successes) == 1
    assert len(failures) == 4
    assert all(isinstance(f, SoldOut) for f in failures)

    # stock is taken before charging: only the winner paid
    assert len(ledger.calls) == 1
    assert await ItemsRepo.get_item(item["id"]) is None
    assert len(await db_fetch_all("SELECT id FROM purchases")) == 1


@pytest.mark.asyncio
async def test_pay_first_mode_reports_sold_out_after_capture(seller, registry, caplog):
    item = await _widget(amount=1)
    ledger = FakeLedger(barrier=2)
    service = PurchaseService(registry, ledger, reserve_first=False)
    registry.start_browse("b1", SELLER)
    registry.start_browse("b2", SELLER)

    results = await asyncio.gather(
        service.purchase("b1", "1", "GOOD"),
        service.purchase("b2", "1", "GOOD"),
        return_exceptions=True,
    )

    assert sum(isinstance(r, SoldOut) for r in results) == 1
    assert sum(not isinstance(r, BaseException) for r in results) == 1
    # both were charged; the loser's tx id is in the error log
    assert len(ledger.calls) == 2
    assert "payment captured but item sold out" in caplog.text
    assert await ItemsRepo.get_item(item["id"]) is None


@pytest.mark.asyncio
async def test_failed_payment_releases_reservation(seller, registry):
    item = await _widget(amount=1)
    service = PurchaseService(registry, FakeLedger())
    registry.start_browse(BUYER, SELLER)

    with pytest.raises(PaymentFailed) as exc:
        await service.purchase(BUYER, "1", "BAD")

    assert exc.value.reason == PaymentFailureReason.LEDGER_REJECTED
    assert exc.value.detail == "Insufficient balance"
    assert await _stock(item["id"]) == {"amount": 1, "reserved": 0}
    assert await PurchasesRepo.list_for_buyer(BUYER) == []

    registry.start_browse("other", SELLER)
    await service.purchase("other", "1", "GOOD")
    assert await ItemsRepo.get_item(item["id"]) is None


@pytest.mark.asyncio
async def test_stored_card_is_the_fallback(seller, registry):
    await _widget(amount=2)
    ledger = FakeLedger()
    service = PurchaseService(registry, ledger)
    await UsersRepo.set_card_code(BUYER, "GOOD")
    registry.start_browse(BUYER, SELLER)

    receipt = await service.purchase(BUYER, "1", "BAD")
    assert [c[0] for c in ledger.calls] == ["BAD", "GOOD"]
    assert receipt.tx_id == "tx-2"

    await service.purchase(BUYER, "1", None)
    assert [c[0] for c in ledger.calls] == ["BAD", "GOOD", "GOOD"]


@pytest.mark.asyncio
async def test_no_card_at_all(seller, registry):
    item = await _widget(amount=1)
    ledger = FakeLedger()
    service = PurchaseService(registry, ledger)
    registry.start_browse(BUYER, SELLER)

    with pytest.raises(NoPaymentMethod):
        await service.purchase(BUYER, "1", "  ")

    assert ledger.calls == []
    assert await _stock(item["id"]) == {"amount": 1, "reserved": 0}


@pytest.mark.asyncio
async def test_expired_session(seller, registry, clock):
    await _widget(amount=1)
    ledger = FakeLedger()
    service = PurchaseService(registry, ledger)

    with pytest.raises(SessionExpired):
        await service.purchase(BUYER, "1", "GOOD")

    registry.start_browse(BUYER, SELLER)
    clock.advance(901)
    with pytest.raises(SessionExpired):
        await service.purchase(BUYER, "1", "GOOD")
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_unknown_item(seller, registry):
    await _widget(amount=1)
    service = PurchaseService(registry, FakeLedger())
    registry.start_browse(BUYER, SELLER)

    with pytest.raises(ItemNotFound):
        await service.purchase(BUYER, "Gadget", "GOOD")
    with pytest.raises(ItemNotFound):
        await service.purchase(BUYER, "2", "GOOD")
    with pytest.raises(ItemNotFound):
        await service.purchase(BUYER, "", "GOOD")


@pytest.mark.asyncio
async def test_deliver_reports_primary_outcome_only(seller, registry):
    await _widget(amount=2)
    service = PurchaseService(registry, FakeLedger())
    registry.start_browse(BUYER, SELLER)
    receipt = await service.purchase(BUYER, "1", "GOOD")

    sent = []

    async def ok(r):
        sent.append(r.purchase_id)

    async def boom(r):
        raise RuntimeError("blocked by user")

    assert await service.deliver(receipt, ok, boom) is True
    assert sent == [receipt.purchase_id]
    assert await service.deliver(receipt, boom, ok) is False
    assert len(sent) == 2


@pytest.mark.asyncio
async def test_unrecorded_sale_still_settles_the_reserved_unit(seller, registry, monkeypatch, caplog):
    item = await _widget(amount=1)
    service = PurchaseService(registry, FakeLedger())
    registry.start_browse(BUYER, SELLER)

    async def failing_record(**kwargs):
        raise StorageFailure()

    monkeypatch.setattr(PurchasesRepo, "record_purchase", staticmethod(failing_record))

    with pytest.raises(StorageFailure):
        await service.purchase(BUYER, "1", "GOOD")

    assert "sale not recorded after payment" in caplog.text
    assert item["id"] in caplog.text
    # paid unit is gone, nothing left reserved
    assert await ItemsRepo.get_item(item["id"]) is None


@pytest.mark.asyncio
async def test_unrecorded_sale_keeps_remaining_stock(seller, registry, monkeypatch):
    item = await _widget(amount=2)
    service = PurchaseService(registry, FakeLedger())
    registry.start_browse(BUYER, SELLER)

    async def failing_record(**kwargs):
        raise StorageFailure()

    monkeypatch.setattr(PurchasesRepo, "record_purchase", staticmethod(failing_record))

    with pytest.raises(StorageFailure):
        await service.purchase(BUYER, "1", "GOOD")

    assert await _stock(item["id"]) == {"amount": 1, "reserved": 0}
