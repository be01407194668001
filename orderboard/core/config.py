"""
Orderboard — Configuration
All settings are read from environment variables (or .env file).
"""
from datetime import datetime, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    SERVICE_NAME: str = "orderboard"
    SERVICE_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8010

    # ── Redis (document store + change feed) ──────────────────
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── Collections ───────────────────────────────────────────
    APP_ID: str = "default-app-id"          # namespace shared by every client of one shop
    MENU_COLLECTION: str = "menu"
    ORDERS_COLLECTION: str = "orders"
    SEED_MENU_ON_STARTUP: bool = True
    SNAPSHOT_SOURCE: str = "full"          # "full" (re-read on every change) or "incremental"

    # ── Checkout ──────────────────────────────────────────────
    ORDER_ID_LENGTH: int = 6
    PICKUP_SLOT_COUNT: int = 8
    PICKUP_LEAD_MINUTES: int = 10
    PICKUP_SLOT_MINUTES: int = 15
    CURRENCY: str = "THB"
    SHOP_TIMEZONE: str = ""                # IANA zone of the pickup labels; empty = server local zone

    # ── JWT (verification only, tokens come from the identity provider) ──
    JWT_SECRET_KEY: str = "CHANGE_ME_IN_PRODUCTION"
    JWT_ALGORITHM: str = "HS256"

    # ── Transition validator (compare-and-set retry) ──────────
    OPT_LOCK_MAX_RETRIES: int = 5
    OPT_LOCK_BASE_DELAY_MS: int = 20      # base exponential backoff delay in ms
    OPT_LOCK_MAX_DELAY_MS: int = 500      # max backoff cap in ms
    OPT_LOCK_JITTER_MS: int = 20          # random jitter range in ms

    # ── Remote transitions (staff terminals talking to the validator) ──
    ORDERBOARD_URL: str = "http://orderboard:8010"
    HTTP_TIMEOUT_SECONDS: float = 3.0

    # ── SSE ───────────────────────────────────────────────────
    SSE_KEEPALIVE_INTERVAL_SECONDS: int = 15
    SSE_RETRY_MILLISECONDS: int = 3000

    # ── Observability ─────────────────────────────────────────
    METRICS_ENABLED: bool = True
    HEALTH_CHECK_TIMEOUT: float = 5.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def shop_timezone() -> tzinfo:
    """Zone in which pickup labels ("09:45 AM") are written and read back."""
    name = get_settings().SHOP_TIMEZONE
    if not name:
        return datetime.now().astimezone().tzinfo
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)
