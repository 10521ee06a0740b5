from __future__ import annotations

from typing import Any, Callable

from reconciler.core.platforms import APP_STORE, GOOGLE_PLAY, STRIPE, validate_credentials, validate_platform
from reconciler.integrations.app_store_client import AppStoreClient
from reconciler.integrations.google_play_client import GooglePlayClient
from reconciler.integrations.stripe_client import StripeClient

ClientFactory = Callable[[str, dict[str, Any]], Any]


def build_client(platform: str, credentials: dict[str, Any]):
    """Create the fetch client for a connection from its decrypted credentials."""
    platform = validate_platform(platform)
    validate_credentials(platform, credentials)
    if platform == STRIPE:
        return StripeClient(credentials["api_key"])
    if platform == APP_STORE:
        return AppStoreClient(
            credentials["issuer_id"],
            credentials["key_id"],
            credentials["private_key"],
            credentials["vendor_number"],
        )
    if platform == GOOGLE_PLAY:
        return GooglePlayClient(
            credentials["service_account_json"],
            credentials["gcs_bucket_name"],
            credentials["package_name"],
            prefix=credentials.get("gcs_report_prefix"),
        )
    raise ValueError(f"Unsupported platform: {platform}")
