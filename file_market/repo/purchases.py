from __future__ import annotations

import time
import uuid
from typing import Any

from sqlalchemy import text

from file_market.core.errors import AlreadyVoted, NoEligiblePurchase
from file_market.db.session import db_fetch_all, db_tx
from file_market.repo.items import ItemsRepo
from file_market.repo.shops import ShopsRepo

VOTE_UP = 5
VOTE_DOWN = -5


class PurchasesRepo:
    """
    Purchases are written once per successful sale and never updated.
    Votes: at most one per purchase (purchase_id is the primary key of `votes`).
    """

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    @staticmethod
    async def record_purchase(
        *,
        buyer_id: str,
        seller_id: str,
        item_id: str,
        item_name: str,
        price_sats: int,
        tx_id: str | None,
    ) -> dict[str, Any]:
        """
        One transaction:
          1) purchase snapshot (price + ledger tx id)
          2) seller stats
          3) settle the reserved unit, delete the item once stock is exhausted
        """
        purchase = {
            "id": str(uuid.uuid4()),
            "buyer_id": str(buyer_id),
            "seller_id": str(seller_id),
            "item_id": str(item_id),
            "item_name": (item_name or "")[:128],
            "price_sats": int(price_sats),
            "tx_id": str(tx_id) if tx_id else None,
            "created_at": PurchasesRepo._now_ms(),
        }
        q_ins = """
        INSERT INTO purchases (id, buyer_id, seller_id, item_id, item_name, price_sats, tx_id, created_at)
        VALUES (:id, :buyer_id, :seller_id, :item_id, :item_name, :price_sats, :tx_id, :created_at)
        """
        async with db_tx() as conn:
            await conn.execute(text(q_ins), purchase)
            await ShopsRepo.bump_sales_stats(seller_id, int(price_sats), conn=conn)
            exhausted = await ItemsRepo.settle_reservation(conn, item_id)

        purchase["item_exhausted"] = exhausted
        return purchase

    @staticmethod
    async def list_for_buyer(buyer_id: str, limit: int = 10) -> list[dict[str, Any]]:
        q = """
        SELECT id, buyer_id, seller_id, item_id, item_name, price_sats, tx_id, created_at
        FROM purchases
        WHERE buyer_id = :bid
        ORDER BY created_at DESC
        LIMIT :lim
        """
        return await db_fetch_all(q, {"bid": str(buyer_id), "lim": int(limit)})

    @staticmethod
    async def record_vote(voter_id: str, seller_id: str, delta: int) -> dict[str, Any]:
        """
        Attaches the vote to the most recent purchase voter -> seller that has no vote yet,
        then moves the seller's reputation by delta (clamped) in the same transaction.
        """
        if int(delta) not in (VOTE_UP, VOTE_DOWN):
            raise ValueError(f"vote must be {VOTE_UP} or {VOTE_DOWN}")

        q_eligible = """
        SELECT p.id
        FROM purchases p
        LEFT JOIN votes v ON v.purchase_id = p.id
        WHERE p.buyer_id = :bid
          AND p.seller_id = :sid
          AND v.purchase_id IS NULL
        ORDER BY p.created_at DESC
        LIMIT 1
        """
        q_any = """
        SELECT 1 AS x
        FROM purchases
        WHERE buyer_id = :bid AND seller_id = :sid
        LIMIT 1
        """
        q_vote = """
        INSERT INTO votes (purchase_id, voter_id, vote)
        VALUES (:pid, :vid, :v)
        ON CONFLICT (purchase_id) DO NOTHING
        """
        params = {"bid": str(voter_id), "sid": str(seller_id)}

        async with db_tx() as conn:
            row = (await conn.execute(text(q_eligible), params)).mappings().first()
            if not row:
                bought = (await conn.execute(text(q_any), params)).first()
                if bought:
                    raise AlreadyVoted()
                raise NoEligiblePurchase()

            purchase_id = str(row["id"])
            res = await conn.execute(text(q_vote), {"pid": purchase_id, "vid": str(voter_id), "v": int(delta)})
            if int(getattr(res, "rowcount", 0) or 0) == 0:
                # a concurrent vote took this purchase
                raise AlreadyVoted()

            await ShopsRepo.adjust_reputation(seller_id, int(delta), conn=conn)

        return {"purchase_id": purchase_id, "voter_id": str(voter_id), "vote": int(delta)}
