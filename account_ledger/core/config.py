from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Account Ledger API"
    database_url: str = "sqlite:///account_ledger.db"
    log_level: str = "INFO"
    sql_echo: bool = False
    host: str = "127.0.0.1"
    port: int = 8000

    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    history_window_days: int = Field(default=30, ge=1)
    reference_retry_limit: int = Field(default=3, ge=1)
    pin_required: bool = True
    # When set, a non-zero opening balance is written to the ledger as a deposit.
    record_opening_deposit: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LEDGER_",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
