"""Runtime settings for the wallet ledger.

Settings are grouped by concern and loaded from environment variables
(prefix ``WALLET_``, nested with ``__``) or an optional ``.env`` file, e.g.
``WALLET_SECURITY__JWT_SECRET`` or ``WALLET_LEDGER__MINIMUM_WITHDRAWAL``.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, PositiveFloat, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_FILE = BASE_DIR / ".env"


class DatabaseSettings(BaseModel):
    """SQLModel engine settings. SQLite by default, Postgres in production."""

    dsn: str = Field(
        "sqlite:///./wallet.db",
        description="SQLAlchemy connection string",
    )
    echo: bool = False


class SecuritySettings(BaseModel):
    jwt_secret: SecretStr = Field(
        SecretStr("change-me-in-production-wallet-ledger"), description="Secret used to sign bearer tokens"
    )
    jwt_algorithm: str = "HS256"
    jwt_ttl_minutes: int = 60 * 24 * 7


class LedgerSettings(BaseModel):
    """Accounting rules."""

    commission_percentage: Decimal = Decimal("7")
    minimum_withdrawal: Decimal = Field(
        Decimal("500"),
        description="Minimum drawn from deposit/referral balances per withdrawal",
    )
    currency_code: str = "PKR"
    currency_symbol: str = "Rs."


class EarningsSettings(BaseModel):
    """Where the external (email submission) earnings total comes from."""

    backend: Literal["submissions", "http"] = "submissions"
    base_url: str | None = None
    timeout_seconds: PositiveFloat = 2.0


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WALLET_",
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: Literal["dev", "prod"] = "dev"
    log_json: bool = False
    database: DatabaseSettings = DatabaseSettings()
    security: SecuritySettings = SecuritySettings()
    ledger: LedgerSettings = LedgerSettings()
    earnings: EarningsSettings = EarningsSettings()

    @property
    def is_production(self) -> bool:
        return self.environment == "prod"


_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""

    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "EarningsSettings",
    "LedgerSettings",
    "SecuritySettings",
    "get_settings",
]
