from __future__ import annotations

import logging

from file_market.db import models  # noqa: F401
from file_market.db.base import Base
from file_market.db.session import get_engine

log = logging.getLogger(__name__)


async def run_migrations() -> None:
    """
    Idempotent: creates missing tables only (users, shops, items, purchases, votes, cooldowns).
    Column changes go through alembic (`RUN_MIGRATIONS=1 python run_migrations.py`).
    """
    try:
        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        log.exception("Migration failed: %s", e)
        raise
    log.info("Database ready")
