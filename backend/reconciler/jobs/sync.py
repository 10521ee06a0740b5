"""
Per-app sync across every active platform connection.

Connections run one after another in the configured platform order. A
failure in one connection is logged and the next one still runs. App store
connections without a previous sync start a chunked backfill; in that case
the last chunk triggers finalization, otherwise it runs at the end here.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from sqlalchemy.orm import Session

from reconciler.core.config import settings
from reconciler.core.db import SessionLocal
from reconciler.core.errors import SyncCancelled
from reconciler.core.platforms import APP_STORE, GOOGLE_PLAY, STRIPE, platform_label
from reconciler.core.time import date_range, utctoday
from reconciler.crud.apps import get_app_currency
from reconciler.crud.platform_connections import get_credentials, list_active_connections, mark_synced
from reconciler.crud.snapshots import platform_snapshot_dates, rollup_unified
from reconciler.crud.sync_logs import append_log
from reconciler.crud.sync_sessions import (
    cancel_session,
    complete_session,
    get_session,
    is_cancelled,
    start_session,
)
from reconciler.integrations.clients import ClientFactory, build_client
from reconciler.jobs.app_store_sync import sync_recent_days
from reconciler.jobs.backfills.base import start_app_store_backfill
from reconciler.jobs.google_play_sync import sync_google_play
from reconciler.jobs.stripe_sync import sync_stripe

logger = logging.getLogger(__name__)


@dataclass
class SyncSummary:
    app_id: int
    session_id: int
    status: str = "running"
    platforms: dict[str, str] = field(default_factory=dict)
    backfill_progress_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "app_id": self.app_id,
            "session_id": self.session_id,
            "status": self.status,
            "platforms": dict(self.platforms),
            "backfill_progress_ids": list(self.backfill_progress_ids),
        }


def finalize_sync(db: Session, app_id: int, session_id: int, *, days: int | None = None) -> int:
    """Rebuild unified snapshots over the horizon and close the session.

    Work is split into windows of ``UNIFIED_ROLLUP_CHUNK_DAYS`` with a
    cancellation check before each. Returns the number of unified snapshots
    written.
    """
    days = days or settings.HISTORICAL_SYNC_DAYS
    end = utctoday()
    all_days = date_range(end - timedelta(days=days), end)
    append_log(db, app_id, "Creating unified snapshots (chunked)...")

    created = 0
    step = settings.UNIFIED_ROLLUP_CHUNK_DAYS
    for index in range(0, len(all_days), step):
        if is_cancelled(db, session_id):
            append_log(db, app_id, "Unified snapshot creation cancelled")
            return created
        window = all_days[index : index + step]
        present = platform_snapshot_dates(db, app_id, window[0], window[-1])
        for day in window:
            if day in present:
                rollup_unified(db, app_id, day)
                created += 1

    append_log(db, app_id, f"Created {created} unified historical snapshots")
    append_log(db, app_id, "Sync completed", level="success")
    complete_session(db, session_id)
    return created


def _sync_connection(
    db: Session,
    connection,
    client,
    credentials: dict[str, Any],
    *,
    session_id: int,
    currency: str,
    historical: bool,
    summary: SyncSummary,
) -> None:
    app_id = connection.app_id
    if connection.platform == STRIPE:
        sync_stripe(db, app_id, client, session_id=session_id, currency=currency, historical=historical)
        mark_synced(db, connection.id)
    elif connection.platform == GOOGLE_PLAY:
        sync_google_play(db, app_id, client, session_id=session_id, currency=currency, historical=historical)
        mark_synced(db, connection.id)
    elif connection.platform == APP_STORE:
        if historical:
            progress = start_app_store_backfill(db, connection, credentials, session_id=session_id)
            summary.backfill_progress_ids.append(progress.id)
        else:
            sync_recent_days(
                db,
                app_id,
                client,
                vendor_number=credentials["vendor_number"],
                currency=currency,
            )
            mark_synced(db, connection.id)


def sync_app(
    db: Session,
    app_id: int,
    *,
    platform: str | None = None,
    force_historical: bool = False,
    session_id: int | None = None,
    client_factory: ClientFactory | None = None,
) -> SyncSummary:
    factory = client_factory or build_client
    session = get_session(db, session_id) if session_id is not None else None
    if session is None:
        session = start_session(db, app_id)
    summary = SyncSummary(app_id=app_id, session_id=session.id)

    append_log(db, app_id, "Sync started")
    connections = list_active_connections(db, app_id, platform=platform)
    append_log(db, app_id, f"Found {len(connections)} platform connection(s)")
    currency = get_app_currency(db, app_id)
    any_historical = False

    for connection in connections:
        label = platform_label(connection.platform)
        if is_cancelled(db, session.id):
            append_log(db, app_id, "Sync cancelled by user")
            summary.status = "cancelled"
            return summary

        historical = force_historical or connection.last_sync_at is None
        any_historical = any_historical or historical
        append_log(db, app_id, f"Starting {label} sync...", platform=connection.platform)
        mode = f"HISTORICAL ({settings.HISTORICAL_SYNC_DAYS} days)" if historical else "INCREMENTAL (current)"
        append_log(db, app_id, f"{label}: Sync mode = {mode}", platform=connection.platform)

        try:
            credentials = get_credentials(connection)
            client = factory(connection.platform, credentials)
            _sync_connection(
                db,
                connection,
                client,
                credentials,
                session_id=session.id,
                currency=currency,
                historical=historical,
                summary=summary,
            )
            summary.platforms[connection.platform] = "ok"
        except SyncCancelled as exc:
            logger.info("sync cancelled", extra={"app_id": app_id, "platform": connection.platform})
            append_log(db, app_id, f"{label}: Sync cancelled by user ({exc})", platform=connection.platform)
            cancel_session(db, session.id)
            summary.platforms[connection.platform] = "cancelled"
            summary.status = "cancelled"
            return summary
        except Exception as exc:
            db.rollback()
            logger.exception("platform sync failed", extra={"app_id": app_id, "platform": connection.platform})
            append_log(db, app_id, f"Error syncing {label}: {exc}", level="error", platform=connection.platform)
            summary.platforms[connection.platform] = "error"

    if summary.backfill_progress_ids:
        summary.status = "backfilling"
        return summary

    rollup_days = settings.HISTORICAL_SYNC_DAYS if any_historical else settings.INCREMENTAL_SYNC_LOOKBACK_DAYS
    finalize_sync(db, app_id, session.id, days=rollup_days)
    summary.status = "completed"
    return summary


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync every platform connection of an app.")
    parser.add_argument("--app-id", type=int, required=True)
    parser.add_argument("--platform", type=str, default=None)
    parser.add_argument("--historical", action="store_true", help="Force a full historical sync.")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    with SessionLocal() as db:
        summary = sync_app(db, args.app_id, platform=args.platform, force_historical=args.historical)
        logger.info("sync finished", extra=summary.to_dict())


if __name__ == "__main__":
    main()
