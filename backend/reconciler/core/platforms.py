from __future__ import annotations

from typing import Any, Iterable, TypeVar

from reconciler.core.config import settings
from reconciler.core.errors import InvalidCredentials

STRIPE = "stripe"
APP_STORE = "appstore"
GOOGLE_PLAY = "googleplay"
UNIFIED = "unified"

PLATFORMS = (STRIPE, GOOGLE_PLAY, APP_STORE)
SNAPSHOT_PLATFORMS = PLATFORMS + (UNIFIED,)

LOG_LEVELS = ("info", "success", "error")

REQUIRED_CREDENTIAL_FIELDS: dict[str, tuple[str, ...]] = {
    STRIPE: ("api_key",),
    APP_STORE: ("issuer_id", "key_id", "private_key", "vendor_number"),
    GOOGLE_PLAY: ("service_account_json", "package_name", "gcs_bucket_name"),
}

T = TypeVar("T")


def validate_platform(platform: str, *, allow_unified: bool = False) -> str:
    value = (platform or "").strip().lower()
    allowed = SNAPSHOT_PLATFORMS if allow_unified else PLATFORMS
    if value not in allowed:
        raise ValueError(f"Unsupported platform: {platform}")
    return value


def validate_log_level(level: str) -> str:
    value = (level or "").strip().lower()
    if value not in LOG_LEVELS:
        raise ValueError(f"Unsupported log level: {level}")
    return value


def validate_credentials(platform: str, credentials: dict[str, Any]) -> dict[str, Any]:
    required = REQUIRED_CREDENTIAL_FIELDS.get(platform, ())
    missing = [name for name in required if not credentials.get(name)]
    if missing:
        raise InvalidCredentials(platform, f"missing credential fields: {', '.join(missing)}")
    return credentials


def platform_rank(platform: str) -> int:
    order = settings.PLATFORM_SYNC_ORDER
    if platform in order:
        return order.index(platform)
    return len(order) + 99


def sort_by_platform(items: Iterable[T], key=lambda item: item.platform) -> list[T]:
    return sorted(items, key=lambda item: platform_rank(key(item)))


PLATFORM_LABELS = {
    STRIPE: "Stripe",
    APP_STORE: "App Store",
    GOOGLE_PLAY: "Google Play",
    UNIFIED: "Unified",
}


def platform_label(platform: str) -> str:
    return PLATFORM_LABELS.get(platform, platform)
