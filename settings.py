# settings.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # DB
    # -----------------------
    DATABASE_URL: str = Field(default="")
    DB_POOL_MIN: int = Field(default=1, ge=1)
    DB_POOL_MAX: int = Field(default=10, ge=1)
    DB_STATEMENT_TIMEOUT_MS: int = Field(default=5000, ge=100)

    # -----------------------
    # Payout execution
    # -----------------------
    PAYOUT_MAX_RETRY_COUNT: int = Field(default=3, ge=1)
    PAYOUT_RETRY_DELAY_DAYS: int = Field(default=1, ge=0)

    # Defaults for lazily created schedules
    PAYOUT_DEFAULT_FREQUENCY: Literal["daily", "weekly", "monthly"] = "weekly"
    PAYOUT_DEFAULT_WEEKLY_DAY: int = Field(default=1, ge=0, le=6)  # 0=Sunday
    PAYOUT_DEFAULT_MONTHLY_DAY: int = Field(default=1, ge=1, le=28)
    PAYOUT_DEFAULT_THRESHOLD_CENTS: int = Field(default=50000, ge=0)
    PAYOUT_DEFAULT_MAX_HOLD_DAYS: int = Field(default=7, ge=0)

    # -----------------------
    # Fees
    # -----------------------
    VOLUME_DISCOUNT_THRESHOLD_CENTS: int = 10_000_000
    VOLUME_DISCOUNT_BPS: int = 50  # 0.5%

    # -----------------------
    # Settlement providers
    # -----------------------
    # "reconcile": a timed-out transfer waits in processing for an operator
    # "retry": a timed-out transfer is treated like any other failure
    SETTLEMENT_UNKNOWN_POLICY: Literal["reconcile", "retry"] = "reconcile"
    # processor_type=adapter pairs, e.g. "STRIPE=HTTP,RAZORPAY=HTTP"
    SETTLEMENT_PROVIDERS: str = "MOCK=MOCK"
    SETTLEMENT_STRICT_STARTUP_VALIDATION: bool = False

    SETTLEMENT_HTTP_URL: str = ""
    SETTLEMENT_HTTP_API_KEY: str = ""
    SETTLEMENT_HTTP_TIMEOUT_S: float = 20.0

    # -----------------------
    # Worker / reconcile
    # -----------------------
    WORKER_POLL_SECONDS: int = 60
    WORKER_BATCH_SIZE: int = 50
    RECONCILE_STALE_MINUTES: int = 30
    RECONCILE_INTERVAL_SECONDS: int = Field(default=300, ge=1)


settings = Settings()


def enabled_providers() -> dict[str, str]:
    out: dict[str, str] = {}
    for pair in (settings.SETTLEMENT_PROVIDERS or "").split(","):
        if not pair.strip():
            continue
        processor_type, _, adapter = pair.partition("=")
        out[processor_type.strip().upper()] = (adapter or processor_type).strip().upper()
    return out
