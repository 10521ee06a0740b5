from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy.orm import Session

from reconciler.core.config import settings
from reconciler.core.currency import CurrencyConverter
from reconciler.core.errors import SyncCancelled
from reconciler.core.metrics import record_sync_day
from reconciler.core.platforms import GOOGLE_PLAY
from reconciler.core.time import utctoday
from reconciler.crud.snapshots import trailing_snapshots, upsert_snapshot
from reconciler.crud.sync_logs import append_log
from reconciler.crud.sync_sessions import is_cancelled
from reconciler.metrics.google_play import build_snapshot_values
from reconciler.reports import google_play
from reconciler.reports.types import MarketplaceBatch, ReportMetadata

logger = logging.getLogger(__name__)


def collect_reports(
    client,
    *,
    converter: CurrencyConverter,
    currency: str,
    start: date,
    end: date,
) -> MarketplaceBatch:
    def _convert(amount, from_currency: str):
        return converter.convert_exact(amount, from_currency or currency, currency)

    parsed = []
    for obj in client.list_reports():
        raw = client.download(obj.name)
        parsed.append(
            google_play.parse(
                raw,
                ReportMetadata(file_name=obj.name, currency=currency),
                convert=_convert,
                start=start,
                end=end,
            )
        )
    return google_play.merge_reports(parsed)


def sync_google_play(
    db: Session,
    app_id: int,
    client,
    *,
    session_id: int,
    currency: str,
    historical: bool,
    today: date | None = None,
) -> int:
    """Scan the report bucket and write one snapshot per reported date."""
    today = today or utctoday()
    window = settings.HISTORICAL_SYNC_DAYS if historical else settings.INCREMENTAL_SYNC_LOOKBACK_DAYS
    start = today - timedelta(days=window)

    batch = collect_reports(client, converter=CurrencyConverter(db), currency=currency, start=start, end=today)
    for message in batch.diagnostics:
        append_log(db, app_id, f"Google Play: {message}", level="error", platform=GOOGLE_PLAY)
    if not batch.dates:
        append_log(db, app_id, "Google Play: No report data found in bucket", level="error", platform=GOOGLE_PLAY)
        return 0

    processed = 0
    for day_text in batch.dates:
        if processed and processed % settings.CANCEL_CHECK_EVERY_DAYS == 0 and is_cancelled(db, session_id):
            raise SyncCancelled(f"Google Play sync cancelled after {processed} days")
        day = date.fromisoformat(day_text)
        values = build_snapshot_values(
            batch.revenue_by_date.get(day_text),
            batch.subscription_metrics_by_date.get(day_text),
            history=trailing_snapshots(db, app_id, GOOGLE_PLAY, day),
        )
        upsert_snapshot(db, app_id, GOOGLE_PLAY, day, values)
        record_sync_day(GOOGLE_PLAY, "synced")
        processed += 1

    append_log(
        db,
        app_id,
        f"Google Play: Sync completed - {processed} days processed "
        f"({', '.join(sorted(batch.report_kinds))} reports)",
        level="success",
        platform=GOOGLE_PLAY,
    )
    return processed
