from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.orm import Session

from reconciler.core.config import settings
from reconciler.core.currency import CurrencyConverter
from reconciler.core.errors import SyncCancelled
from reconciler.core.metrics import record_sync_day
from reconciler.core.platforms import STRIPE
from reconciler.core.time import date_range, utctoday
from reconciler.crud.revenue_events import store_revenue_events
from reconciler.crud.subscriptions import upsert_subscriptions
from reconciler.crud.sync_logs import append_log
from reconciler.crud.sync_sessions import is_cancelled
from reconciler.metrics.aggregator import aggregate_day
from reconciler.reports import stripe as stripe_report

logger = logging.getLogger(__name__)


def _epoch_seconds(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp())


def sync_stripe(
    db: Session,
    app_id: int,
    client,
    *,
    session_id: int,
    currency: str,
    historical: bool,
    today: date | None = None,
) -> int:
    """Ingest card processor objects and recompute the affected daily snapshots.

    Returns the number of days recomputed.
    """
    today = today or utctoday()
    if historical:
        start = today - timedelta(days=settings.HISTORICAL_SYNC_DAYS - 1)
        created_gte = None
    else:
        start = today
        created_gte = _epoch_seconds(today - timedelta(days=1))

    batch = stripe_report.parse(client.fetch_all(created_gte=created_gte))
    subs = upsert_subscriptions(db, app_id, STRIPE, batch.subscriptions)
    ingest = store_revenue_events(db, app_id, STRIPE, batch.revenue_events)
    append_log(
        db,
        app_id,
        f"Stripe: {len(batch.subscriptions)} subscriptions ({subs['created']} new), "
        f"{ingest.stored} revenue events stored, {ingest.skipped_duplicate} duplicates skipped",
        platform=STRIPE,
    )
    for message in batch.diagnostics:
        append_log(db, app_id, f"Stripe: {message}", level="error", platform=STRIPE)

    converter = CurrencyConverter(db)
    processed = 0
    for day in date_range(start, today):
        if processed and processed % settings.CANCEL_CHECK_EVERY_DAYS == 0 and is_cancelled(db, session_id):
            raise SyncCancelled(f"Stripe sync cancelled after {processed} days")
        aggregate_day(db, app_id, STRIPE, day, currency=currency, converter=converter)
        record_sync_day(STRIPE, "synced")
        processed += 1

    append_log(
        db,
        app_id,
        f"Stripe: Sync completed - {processed} days processed",
        level="success" if processed else "error",
        platform=STRIPE,
    )
    return processed
