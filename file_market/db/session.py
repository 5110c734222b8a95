from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from file_market.config import settings
from file_market.core.errors import StorageFailure

log = logging.getLogger(__name__)

_engine: AsyncEngine | None = None


def async_url(url: str) -> str:
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


def init_engine(url: str | None = None) -> AsyncEngine:
    global _engine
    _engine = create_async_engine(async_url(url or settings.DATABASE_URL), pool_pre_ping=True)
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        return init_engine()
    return _engine


async def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


@asynccontextmanager
async def db_tx() -> AsyncIterator[AsyncConnection]:
    """
    One transaction for several statements (commit on exit, rollback on error).
    """
    try:
        async with get_engine().begin() as conn:
            yield conn
    except SQLAlchemyError as e:
        log.exception("db transaction failed: %s", e)
        raise StorageFailure() from e


async def db_fetch_one(query: str, params: dict | None = None) -> dict | None:
    params = params or {}
    # begin() => commit/rollback on exit
    try:
        async with get_engine().begin() as conn:
            res = await conn.execute(text(query), params)
            row = res.mappings().first()
            return dict(row) if row else None
    except SQLAlchemyError as e:
        log.exception("db_fetch_one failed: %s", e)
        raise StorageFailure() from e


async def db_fetch_all(query: str, params: dict | None = None) -> list[dict]:
    params = params or {}
    try:
        async with get_engine().begin() as conn:
            res = await conn.execute(text(query), params)
            return [dict(r) for r in res.mappings().all()]
    except SQLAlchemyError as e:
        log.exception("db_fetch_all failed: %s", e)
        raise StorageFailure() from e


async def db_execute(query: str, params: dict | None = None) -> int:
    params = params or {}
    try:
        async with get_engine().begin() as conn:
            res = await conn.execute(text(query), params)
            return int(getattr(res, "rowcount", 0) or 0)
    except SQLAlchemyError as e:
        log.exception("db_execute failed: %s", e)
        raise StorageFailure() from e
