from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from file_market.config import settings
from file_market.db import models  # noqa: F401
from file_market.db.base import Base
from file_market.db.session import async_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

DB_URL = async_url(settings.DATABASE_URL)


def _migrate(**configure_kwargs) -> None:
    context.configure(target_metadata=Base.metadata, compare_type=True, **configure_kwargs)
    with context.begin_transaction():
        context.run_migrations()


def _migrate_on(connection: Connection) -> None:
    # sqlite can't ALTER most things in place
    _migrate(connection=connection, render_as_batch=connection.dialect.name == "sqlite")


async def _migrate_online() -> None:
    engine = create_async_engine(DB_URL, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate_on)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    _migrate(url=DB_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    asyncio.run(_migrate_online())
