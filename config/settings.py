"""
config/settings.py
Environment-driven configuration (pydantic-settings). Every module reads
the module-level `settings` object; tests set env vars before import.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App / server ─────────────────────────────────────────
    APP_NAME: str = "Tutor Connect"
    APP_ENV: str = "development"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # ── Storage ──────────────────────────────────────────────
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_CACHE_TTL: int = 300          # seconds

    # ── Auth ─────────────────────────────────────────────────
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=31)
    RATE_LIMIT_UNAUTH_PER_MINUTE: int = 20

    # ── Money ────────────────────────────────────────────────
    PLATFORM_FEE_PERCENTAGE: Decimal = Field(default=Decimal("10"), ge=0, le=100)
    DEFAULT_CURRENCY: str = "ETB"
    DEPOSIT_MIN: Decimal = Decimal("10")
    DEPOSIT_MAX: Decimal = Decimal("10000")
    WITHDRAWAL_MIN: Decimal = Decimal("50")

    # ── Sessions ─────────────────────────────────────────────
    BOOKING_MIN_DURATION_MINUTES: int = 30
    BOOKING_MAX_DURATION_MINUTES: int = 180
    BOOKING_AUTO_COMPLETE_HOURS: int = 24
    CLASSROOM_BASE_URL: str = "https://meet.jit.si"
    CLASSROOM_ROOM_PREFIX: str = "TutorConnect"

    # ── Background jobs ──────────────────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
