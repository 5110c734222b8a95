from __future__ import annotations

import time
import uuid
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from file_market.core.errors import ItemNotFound
from file_market.db.session import db_execute, db_fetch_all, db_fetch_one, db_tx

# listing columns (no blob)
_ITEM_COLS = """
    id,
    owner_id,
    name,
    original_filename,
    price_sats,
    size_bytes,
    amount,
    reserved,
    created_at
"""

_last_created_ms = 0


def _next_created_ms() -> int:
    """
    Strictly increasing per process, so creation order (and item numbering) has no ties.
    """
    global _last_created_ms
    ts = max(int(time.time() * 1000), _last_created_ms + 1)
    _last_created_ms = ts
    return ts


def name_key(name: str) -> str:
    return (name or "").strip().casefold()[:128]


def parse_position(token: str) -> int | None:
    t = (token or "").strip()
    if not t.isdigit():
        return None
    n = int(t)
    return n if n > 0 else None


class ItemsRepo:
    # --------- listing ---------

    @staticmethod
    async def list_items(owner_id: str, offset: int = 0, limit: int = 50) -> list[dict[str, Any]]:
        """
        Creation order ascending: position N in this listing is item number N for buyers and sellers.
        """
        q = f"""
        SELECT {_ITEM_COLS}
        FROM items
        WHERE owner_id = :oid
        ORDER BY created_at ASC, id ASC
        LIMIT :lim OFFSET :off
        """
        return await db_fetch_all(
            q,
            {"oid": str(owner_id), "lim": max(0, int(limit)), "off": max(0, int(offset))},
        )

    @staticmethod
    async def count_items(owner_id: str) -> int:
        q = "SELECT COUNT(*) AS cnt FROM items WHERE owner_id = :oid"
        row = await db_fetch_one(q, {"oid": str(owner_id)}) or {}
        return int(row.get("cnt") or 0)

    @staticmethod
    async def get_item(item_id: str) -> dict | None:
        q = f"""
        SELECT {_ITEM_COLS}, file
        FROM items
        WHERE id = :id
        """
        return await db_fetch_one(q, {"id": str(item_id)})

    @staticmethod
    async def get_item_at(owner_id: str, position: int) -> dict | None:
        if position <= 0:
            return None
        rows = await ItemsRepo.list_items(owner_id, offset=position - 1, limit=1)
        return rows[0] if rows else None

    @staticmethod
    async def find_item_by_name_or_index(owner_id: str, token: str) -> dict | None:
        """
        "2"      -> second item of the shop (1-based, creation order)
        "Widget" -> first item named "widget", case-insensitive exact match
        Returned row includes the file payload.
        """
        position = parse_position(token)
        if position is not None:
            row = await ItemsRepo.get_item_at(owner_id, position)
            if not row:
                return None
            return await ItemsRepo.get_item(str(row["id"]))

        key = name_key(token)
        if not key:
            return None
        q = f"""
        SELECT {_ITEM_COLS}, file
        FROM items
        WHERE owner_id = :oid AND name_key = :k
        ORDER BY created_at ASC, id ASC
        LIMIT 1
        """
        return await db_fetch_one(q, {"oid": str(owner_id), "k": key})

    # --------- seller side ---------

    @staticmethod
    async def add_item(
        owner_id: str,
        *,
        name: str,
        price_sats: int,
        amount: int,
        filename: str,
        file_bytes: bytes,
    ) -> dict[str, Any]:
        if int(price_sats) <= 0 or int(amount) <= 0:
            raise ValueError("price and amount must be positive")

        item = {
            "id": str(uuid.uuid4()),
            "owner_id": str(owner_id),
            "name": (name or "").strip()[:128],
            "name_key": name_key(name),
            "original_filename": (filename or "").strip()[:256],
            "price_sats": int(price_sats),
            "size_bytes": len(file_bytes),
            "amount": int(amount),
            "reserved": 0,
            "created_at": _next_created_ms(),
        }
        q = """
        INSERT INTO items
            (id, owner_id, name, name_key, original_filename, price_sats, size_bytes, amount, reserved, file, created_at)
        VALUES
            (:id, :owner_id, :name, :name_key, :original_filename, :price_sats, :size_bytes, :amount, :reserved, :file, :created_at)
        """
        await db_execute(q, {**item, "file": bytes(file_bytes)})
        return item

    @staticmethod
    async def remove_item_by_position(owner_id: str, position: int) -> dict[str, Any]:
        item = await ItemsRepo.get_item_at(owner_id, int(position))
        if not item:
            raise ItemNotFound("❌ Item number not found.")

        q = "DELETE FROM items WHERE id = :id AND owner_id = :oid"
        deleted = await db_execute(q, {"id": str(item["id"]), "oid": str(owner_id)})
        if deleted == 0:
            # sold out / removed between the two statements
            raise ItemNotFound("❌ Item number not found.")
        return item

    # --------- stock ---------

    @staticmethod
    async def decrement_stock_if_available(item_id: str) -> bool:
        """
        Single conditional UPDATE: of any number of concurrent callers racing for the last unit,
        exactly one gets True. The unit moves to `reserved` until the sale is recorded or released.
        """
        q = """
        UPDATE items
        SET amount = amount - 1,
            reserved = reserved + 1
        WHERE id = :id AND amount > 0
        """
        return await db_execute(q, {"id": str(item_id)}) == 1

    @staticmethod
    async def release_reservation(item_id: str) -> bool:
        q = """
        UPDATE items
        SET amount = amount + 1,
            reserved = reserved - 1
        WHERE id = :id AND reserved > 0
        """
        return await db_execute(q, {"id": str(item_id)}) == 1

    @staticmethod
    async def settle_reservation(conn: AsyncConnection, item_id: str) -> bool:
        """
        Part of the sale transaction. Returns True when the row was deleted (stock exhausted).
        """
        await conn.execute(
            text("UPDATE items SET reserved = reserved - 1 WHERE id = :id AND reserved > 0"),
            {"id": str(item_id)},
        )
        res = await conn.execute(
            text("DELETE FROM items WHERE id = :id AND amount <= 0 AND reserved <= 0"),
            {"id": str(item_id)},
        )
        return int(getattr(res, "rowcount", 0) or 0) > 0

    @staticmethod
    async def settle_reserved_unit(item_id: str) -> bool:
        """
        settle_reservation on its own transaction (sale paid for but not recorded).
        """
        async with db_tx() as conn:
            return await ItemsRepo.settle_reservation(conn, item_id)
