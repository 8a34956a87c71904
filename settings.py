# settings.py
from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_JWT_SECRET = "dev-secret-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # Storage
    # -----------------------
    # "memory" keeps documents in-process (dev + tests)
    STORE_BACKEND: Literal["postgres", "memory"] = "postgres"
    DATABASE_URL: str = Field(default="")
    DB_POOL_MIN: int = 1
    DB_POOL_MAX: int = 10
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    STORE_RETRY_ATTEMPTS: int = Field(default=4, ge=1)
    STORE_RETRY_BASE_DELAY_S: float = 0.05

    # -----------------------
    # JWT
    # -----------------------
    JWT_SECRET: str = Field(default=_DEFAULT_JWT_SECRET, min_length=16)
    JWT_ALG: str = Field(default="HS256")
    JWT_ACCESS_MINUTES: int = Field(default=60)

    # -----------------------
    # Webhooks
    # -----------------------
    PAYMENT_WEBHOOK_SECRET: str = ""
    TRANSFER_WEBHOOK_SECRET: str = ""

    # -----------------------
    # Payouts
    # -----------------------
    MIN_PAYOUT_CENTS: int = Field(default=1000, ge=1)
    PAYOUT_RUN_TIMEOUT_S: float = 300.0
    PAYOUT_CLAIM_LEASE_S: int = 900
    PAYOUT_METHOD: Literal["ach", "paypal", "wise", "check"] = "ach"

    # weekday: Monday=0 ... Sunday=6
    PAYOUT_SCHEDULE_WEEKDAY: int = Field(default=4, ge=0, le=6)
    PAYOUT_SCHEDULE_HOUR: int = Field(default=18, ge=0, le=23)
    PAYOUT_SCHEDULE_TZ: str = "America/Los_Angeles"

    # -----------------------
    # Bank transfer (Mode Switch)
    # -----------------------
    TRANSFER_MODE: Literal["mock", "http"] = "mock"
    TRANSFER_API_URL: str = ""
    TRANSFER_API_KEY: str = ""
    TRANSFER_HTTP_TIMEOUT_S: float = 20.0

    # -----------------------
    # Notifications
    # -----------------------
    PUSH_GATEWAY_URL: str = ""
    PUSH_GATEWAY_KEY: str = ""
    PUSH_HTTP_TIMEOUT_S: float = 5.0

    LOG_LEVEL: str = "INFO"
    ENV: str = "dev"


def _sorted_csv(items: Iterable[str]) -> str:
    return ", ".join(sorted(set(items)))


def validate_env_settings(s: "Settings | None" = None) -> None:
    """Fail fast outside dev when a deployment is missing what it needs to move money."""
    s = s or settings
    env = (s.ENV or "dev").strip().lower()
    if env in ("dev", "local", "test"):
        return

    missing: list[str] = []
    if s.STORE_BACKEND == "postgres" and not s.DATABASE_URL.strip():
        missing.append("DATABASE_URL")
    if s.JWT_SECRET == _DEFAULT_JWT_SECRET:
        missing.append("JWT_SECRET")
    if not s.PAYMENT_WEBHOOK_SECRET.strip():
        missing.append("PAYMENT_WEBHOOK_SECRET")
    if not s.TRANSFER_WEBHOOK_SECRET.strip():
        missing.append("TRANSFER_WEBHOOK_SECRET")
    if s.TRANSFER_MODE == "http":
        if not s.TRANSFER_API_URL.strip():
            missing.append("TRANSFER_API_URL")
        if not s.TRANSFER_API_KEY.strip():
            missing.append("TRANSFER_API_KEY")

    if missing:
        raise RuntimeError(
            f"Startup validation failed. env={env} Missing required env vars: " + _sorted_csv(missing)
        )


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    return settings
