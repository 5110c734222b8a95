"""
Schema upgrade for deployments that already hold data:

    RUN_MIGRATIONS=1 python run_migrations.py

Fresh databases don't need it: the app creates missing tables on startup.
"""
from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from file_market.config import settings

log = logging.getLogger("file_market.migrations")

ROOT = Path(__file__).resolve().parent


def alembic_config() -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    return cfg


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    if not settings.RUN_MIGRATIONS:
        log.info("RUN_MIGRATIONS is off, alembic skipped")
        return

    command.upgrade(alembic_config(), "head")
    log.info("alembic upgrade head done")


if __name__ == "__main__":
    main()
