# Central place for all configurable settings. Values come from env vars
# or a .env file through pydantic's BaseSettings, so workers and the API
# read the same knobs without hardcoding them.

import json
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def safe_json_loads(value):
    try:
        return json.loads(value)
    except Exception:
        return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_json_loads=safe_json_loads,
    )

    # Core DB connection string, like sqlite:///./reconciler.db or a
    # Postgres URL. Needed by SQLAlchemy to connect to the store.
    DATABASE_URL: str

    # Toggle SQLAlchemy echo logs. Useful for debugging queries locally.
    DB_ECHO: bool = False

    # Fernet key used to encrypt platform connection credentials at rest.
    INTEGRATION_ENCRYPTION_KEY: Optional[str] = None

    # Currency used when an app has no preference of its own.
    DEFAULT_CURRENCY: str = "USD"

    # Historical backfill horizon and the size of each self-scheduling chunk.
    HISTORICAL_SYNC_DAYS: int = Field(default=365, gt=0)
    SYNC_CHUNK_SIZE_DAYS: int = Field(default=30, gt=0)

    # App store reports lag behind by a few days. A missing report this
    # close to today is skipped silently instead of counted as an error.
    REPORT_DELAY_GRACE_DAYS: int = 3

    # Incremental windows once a connection has synced at least once.
    INCREMENTAL_SYNC_LOOKBACK_DAYS: int = 90
    APP_STORE_INCREMENTAL_DAYS: int = 3

    # Unified snapshots are rebuilt in windows of this many days.
    UNIFIED_ROLLUP_CHUNK_DAYS: int = Field(default=100, gt=0)

    # Commission assumed when a source gives no proceeds figure.
    ASSUMED_PLATFORM_FEE_RATE: float = 0.15

    # How often (in processed days) the simple per-connection loops poll
    # the session cancellation flag.
    CANCEL_CHECK_EVERY_DAYS: int = Field(default=10, gt=0)

    # Sync priority. Card processor and marketplace go before the app store
    # because app store backfills are the ones that get chunked.
    PLATFORM_SYNC_ORDER: List[str] = Field(
        default_factory=lambda: ["stripe", "googleplay", "appstore"]
    )

    # Upstream endpoints and HTTP behaviour for the fetch clients.
    APP_STORE_API_BASE_URL: str = "https://api.appstoreconnect.apple.com/v1"
    APP_STORE_TOKEN_TTL_SECONDS: int = 120
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Background queue tuning.
    JOB_QUEUE_LOCK_TIMEOUT_SECONDS: int = 900
    JOB_QUEUE_POLL_INTERVAL_SECONDS: float = 2.0

    # Sync log listing default page size.
    SYNC_LOG_DEFAULT_LIMIT: int = 50

    @field_validator("PLATFORM_SYNC_ORDER", mode="before")
    @classmethod
    def _parse_list_values(cls, value):
        if isinstance(value, str):
            parts = [p.strip().lower() for p in value.split(",") if p.strip()]
            return parts
        return value

    @field_validator("DEFAULT_CURRENCY", mode="before")
    @classmethod
    def _normalize_currency(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


# Instantiate a single settings object for app-wide import.
# Any module can just `from reconciler.core.config import settings`.
settings = Settings()
