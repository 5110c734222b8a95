from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from file_market.db.session import db_execute, db_fetch_one

REPUTATION_MIN = -1000
REPUTATION_MAX = 1000

# portable clamp (sqlite MIN/MAX vs postgres LEAST/GREATEST)
_Q_ADJUST_REPUTATION = """
UPDATE shops
SET reputation = CASE
    WHEN reputation + :d > :hi THEN :hi
    WHEN reputation + :d < :lo THEN :lo
    ELSE reputation + :d
END
WHERE user_id = :uid
"""

_Q_BUMP_SALES = """
UPDATE shops
SET total_sales = total_sales + 1,
    total_earned_sats = total_earned_sats + :p
WHERE user_id = :uid
"""


def _adjust_params(owner_id: str, delta: int) -> dict[str, Any]:
    return {"uid": str(owner_id), "d": int(delta), "lo": REPUTATION_MIN, "hi": REPUTATION_MAX}


class ShopsRepo:
    @staticmethod
    async def get(owner_id: str) -> dict | None:
        q = """
        SELECT user_id, reputation, total_sales, total_earned_sats
        FROM shops
        WHERE user_id = :uid
        """
        return await db_fetch_one(q, {"uid": str(owner_id)})

    @staticmethod
    async def get_reputation(owner_id: str) -> int:
        row = await ShopsRepo.get(owner_id) or {}
        return int(row.get("reputation") or 0)

    @staticmethod
    async def adjust_reputation(owner_id: str, delta: int, *, conn: AsyncConnection | None = None) -> None:
        if conn is not None:
            await conn.execute(text(_Q_ADJUST_REPUTATION), _adjust_params(owner_id, delta))
            return
        await db_execute(_Q_ADJUST_REPUTATION, _adjust_params(owner_id, delta))

    @staticmethod
    async def bump_sales_stats(owner_id: str, price_sats: int, *, conn: AsyncConnection | None = None) -> None:
        params = {"uid": str(owner_id), "p": int(price_sats)}
        if conn is not None:
            await conn.execute(text(_Q_BUMP_SALES), params)
            return
        await db_execute(_Q_BUMP_SALES, params)
