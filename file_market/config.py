from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    BOT_TOKEN: str = ""
    BOT_NAME: str = "Files Shop"

    WEBHOOK_URL: str = ""  # empty => long polling
    WEBHOOK_PATH: str = "/tg/webhook"

    DATABASE_URL: str = "sqlite+aiosqlite:///./database.db"

    # no trailing slash
    COIN_API_BASE: str = "https://bank.foxsrv.net"
    LEDGER_TIMEOUT_SECONDS: float = 15.0
    LEDGER_MAX_RETRIES: int = 2

    MAX_FILE_MB: int = 8
    PAGE_SIZE: int = 5

    PANEL_COOLDOWN_SECONDS: int = 10 * 60
    UPLOAD_WINDOW_SECONDS: int = 5 * 60
    BROWSE_SESSION_TTL_SECONDS: int = 15 * 60

    SESSION_SWEEP_SECONDS: int = 60
    UPLOAD_SWEEP_SECONDS: int = 30

    # reserve stock before charging the card (false => pay first, then decrement)
    RESERVE_STOCK_BEFORE_PAYMENT: bool = True

    PORT: int = 8080
    LOG_LEVEL: str = "INFO"

    # alembic upgrade head before start (run_migrations.py)
    RUN_MIGRATIONS: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def max_file_bytes(self) -> int:
        return int(self.MAX_FILE_MB) * 1024 * 1024

    @property
    def ledger_base(self) -> str:
        return self.COIN_API_BASE.rstrip("/")


settings = Settings()
