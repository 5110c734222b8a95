from __future__ import annotations

import time

from sqlalchemy import text

from file_market.db.session import db_execute, db_fetch_one, db_tx


def now_ms() -> int:
    return int(time.time() * 1000)


class UsersRepo:
    @staticmethod
    async def ensure_user(user_id: str) -> None:
        """
        User + Shop pair, created lazily on the first shop-affecting action.
        Safe to call on every action.
        """
        q_user = """
        INSERT INTO users (user_id, created_at)
        VALUES (:uid, :ts)
        ON CONFLICT (user_id) DO NOTHING
        """
        q_shop = """
        INSERT INTO shops (user_id, reputation, total_sales, total_earned_sats)
        VALUES (:uid, 0, 0, 0)
        ON CONFLICT (user_id) DO NOTHING
        """
        async with db_tx() as conn:
            await conn.execute(text(q_user), {"uid": str(user_id), "ts": now_ms()})
            await conn.execute(text(q_shop), {"uid": str(user_id)})

    @staticmethod
    async def get(user_id: str) -> dict | None:
        q = """
        SELECT user_id, card_code, created_at
        FROM users
        WHERE user_id = :uid
        """
        return await db_fetch_one(q, {"uid": str(user_id)})

    @staticmethod
    async def get_card_code(user_id: str) -> str | None:
        row = await UsersRepo.get(user_id)
        code = (row or {}).get("card_code")
        return str(code) if code else None

    @staticmethod
    async def set_card_code(user_id: str, card_code: str | None) -> None:
        await UsersRepo.ensure_user(user_id)
        q = """
        UPDATE users
        SET card_code = :cc
        WHERE user_id = :uid
        """
        code = (card_code or "").strip()[:128] or None
        await db_execute(q, {"uid": str(user_id), "cc": code})

    # --------- panel cooldown ---------

    @staticmethod
    async def get_panel_ts(user_id: str) -> int:
        q = "SELECT panel_ts FROM cooldowns WHERE user_id = :uid"
        row = await db_fetch_one(q, {"uid": str(user_id)}) or {}
        return int(row.get("panel_ts") or 0)

    @staticmethod
    async def touch_panel(user_id: str, ts: int | None = None) -> None:
        q = """
        INSERT INTO cooldowns (user_id, panel_ts)
        VALUES (:uid, :ts)
        ON CONFLICT (user_id) DO UPDATE SET panel_ts = EXCLUDED.panel_ts
        """
        await db_execute(q, {"uid": str(user_id), "ts": int(ts if ts is not None else now_ms())})
