"""
Chunked historical backfill for app store connections.

A backfill is a ``SyncProgress`` checkpoint plus a chain of queue jobs. Each
job processes one chunk of days and enqueues its successor, so no single run
comes near the worker's time limit. The last chunk hands over to the
finalize job, which rebuilds unified snapshots and closes the session.

Cancellation is checked before each chunk. A cancelled backfill deletes its
checkpoint and keeps every snapshot already written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from sqlalchemy.orm import Session

from reconciler.core.config import settings
from reconciler.core.currency import CurrencyConverter
from reconciler.core.errors import AuthenticationFailure, RateNotFound
from reconciler.core.metrics import record_backfill_chunk
from reconciler.core.platforms import APP_STORE
from reconciler.core.queue import JOB_APP_STORE_CHUNK, JOB_SYNC_FINALIZE, enqueue_job
from reconciler.core.time import utctoday
from reconciler.crud.apps import get_app_currency
from reconciler.crud.platform_connections import mark_synced
from reconciler.crud.sync_logs import append_log
from reconciler.crud.sync_progress import (
    STATUS_CANCELLED,
    create_progress,
    delete_progress,
    get_progress,
    get_progress_credentials,
    mark_running,
    record_chunk,
)
from reconciler.crud.sync_sessions import is_cancelled
from reconciler.integrations.clients import ClientFactory, build_client
from reconciler.jobs.app_store_sync import DayTotals, process_day
from reconciler.models.platform_connections import PlatformConnection
from reconciler.models.sync_progress import SyncProgress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkWindow:
    index: int
    first_offset: int
    end_offset: int

    @property
    def days(self) -> int:
        return self.end_offset - self.first_offset


def chunk_window(progress: SyncProgress, index: int | None = None) -> ChunkWindow:
    index = progress.current_chunk if index is None else index
    first = index * progress.chunk_size_days
    end = min(progress.total_days, first + progress.chunk_size_days)
    return ChunkWindow(index=index, first_offset=first, end_offset=end)


def plan_chunks(total_days: int, chunk_size_days: int) -> list[tuple[int, int]]:
    """Return ``(first_offset, end_offset)`` pairs covering ``total_days``."""
    return [
        (start, min(total_days, start + chunk_size_days))
        for start in range(0, max(total_days, 0), chunk_size_days)
    ]


def start_app_store_backfill(
    db: Session,
    connection: PlatformConnection,
    credentials: dict[str, Any],
    *,
    session_id: int,
    total_days: int | None = None,
    chunk_size_days: int | None = None,
    today: date | None = None,
) -> SyncProgress:
    total_days = total_days or settings.HISTORICAL_SYNC_DAYS
    chunk_size_days = chunk_size_days or settings.SYNC_CHUNK_SIZE_DAYS
    today = today or utctoday()
    progress = create_progress(
        db,
        app_id=connection.app_id,
        platform=APP_STORE,
        connection_id=connection.id,
        session_id=session_id,
        credentials=credentials,
        start_date=today - timedelta(days=total_days),
        total_days=total_days,
        chunk_size_days=chunk_size_days,
    )
    append_log(
        db,
        connection.app_id,
        f"App Store: Starting historical sync in {progress.total_chunks} batches of {chunk_size_days} days",
        platform=APP_STORE,
    )
    enqueue_job(
        db,
        job_type=JOB_APP_STORE_CHUNK,
        payload={"progress_id": progress.id},
        app_id=connection.app_id,
    )
    return progress


def _cancel(db: Session, progress: SyncProgress) -> dict[str, Any]:
    app_id = progress.app_id
    append_log(db, app_id, "App Store: Sync cancelled by user", platform=APP_STORE)
    delete_progress(db, progress)
    record_backfill_chunk(APP_STORE, STATUS_CANCELLED)
    return {"status": STATUS_CANCELLED}


def run_app_store_chunk(
    db: Session,
    progress_id: int,
    *,
    client_factory: ClientFactory | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    progress = get_progress(db, progress_id)
    if progress is None:
        logger.info("backfill checkpoint gone; nothing to do", extra={"progress_id": progress_id})
        return {"status": "missing"}
    if is_cancelled(db, progress.session_id):
        return _cancel(db, progress)

    mark_running(db, progress)
    app_id = progress.app_id
    window = chunk_window(progress)
    append_log(
        db,
        app_id,
        f"App Store: Processing batch {window.index + 1}/{progress.total_chunks} "
        f"(days {window.first_offset + 1}-{window.end_offset} of {progress.total_days})",
        platform=APP_STORE,
    )

    credentials = get_progress_credentials(progress)
    client = (client_factory or build_client)(APP_STORE, credentials)
    currency = get_app_currency(db, app_id)
    converter = CurrencyConverter(db)
    totals = DayTotals()
    days = [progress.start_date + timedelta(days=offset) for offset in range(window.first_offset, window.end_offset)]

    try:
        for day in days:
            totals.add(
                process_day(
                    db,
                    app_id,
                    client,
                    day,
                    vendor_number=credentials["vendor_number"],
                    currency=currency,
                    converter=converter,
                    today=today,
                )
            )
    except (AuthenticationFailure, RateNotFound) as exc:
        progress.error = str(exc)
        db.commit()
        append_log(db, app_id, f"Error syncing App Store: {exc}", level="error", platform=APP_STORE)
        record_backfill_chunk(APP_STORE, "failed")
        raise

    if days:
        append_log(
            db,
            app_id,
            f"App Store: Batch {window.index + 1}/{progress.total_chunks} complete "
            f"[{days[0].isoformat()} → {days[-1].isoformat()}] - {totals.synced} days, "
            f"{totals.renewals} renewals, {totals.revenue:.2f} revenue",
            level="success" if totals.synced else "info",
            platform=APP_STORE,
        )
    progress = record_chunk(
        db,
        progress,
        days_in_chunk=window.days,
        synced_in_chunk=totals.synced,
        last_processed_date=days[-1] if days else None,
    )
    record_backfill_chunk(APP_STORE, "completed")

    if progress.current_chunk < progress.total_chunks:
        enqueue_job(db, job_type=JOB_APP_STORE_CHUNK, payload={"progress_id": progress.id}, app_id=app_id)
        return {"status": "running", "chunk": window.index + 1, "synced": totals.synced}

    append_log(
        db,
        app_id,
        f"App Store: Historical sync completed - {progress.processed_days} days processed, "
        f"{progress.synced_days} synced",
        level="success" if progress.synced_days else "error",
        platform=APP_STORE,
    )
    mark_synced(db, progress.connection_id)
    session_id = progress.session_id
    total_days = progress.total_days
    delete_progress(db, progress)
    enqueue_job(
        db,
        job_type=JOB_SYNC_FINALIZE,
        payload={"app_id": app_id, "session_id": session_id, "days": total_days},
        app_id=app_id,
    )
    return {"status": "completed", "chunk": window.index + 1, "synced": totals.synced}
