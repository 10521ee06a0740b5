import math
from datetime import date
from typing import Any

from sqlalchemy import desc
from sqlalchemy.orm import Session

from reconciler.core.crypto import decrypt_json, encrypt_json
from reconciler.core.time import utcnow
from reconciler.models.sync_progress import SyncProgress

STATUS_PENDING = "pending"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"


def chunk_count(total_days: int, chunk_size_days: int) -> int:
    if total_days <= 0:
        return 0
    return math.ceil(total_days / chunk_size_days)


def create_progress(
    db: Session,
    *,
    app_id: int,
    platform: str,
    connection_id: int,
    session_id: int,
    credentials: dict[str, Any],
    start_date: date,
    total_days: int,
    chunk_size_days: int,
) -> SyncProgress:
    if chunk_size_days <= 0:
        raise ValueError("chunk_size_days must be positive")
    progress = SyncProgress(
        app_id=app_id,
        platform=platform,
        connection_id=connection_id,
        session_id=session_id,
        status=STATUS_PENDING,
        credentials_encrypted=encrypt_json(credentials),
        start_date=start_date,
        total_days=total_days,
        chunk_size_days=chunk_size_days,
        total_chunks=chunk_count(total_days, chunk_size_days),
        current_chunk=0,
        processed_days=0,
        synced_days=0,
        started_at=utcnow(),
    )
    db.add(progress)
    db.commit()
    db.refresh(progress)
    return progress


def get_progress(db: Session, progress_id: int) -> SyncProgress | None:
    return db.query(SyncProgress).filter(SyncProgress.id == progress_id).first()


def get_progress_for_app(db: Session, app_id: int, platform: str | None = None) -> SyncProgress | None:
    query = db.query(SyncProgress).filter(SyncProgress.app_id == app_id)
    if platform:
        query = query.filter(SyncProgress.platform == platform)
    return query.order_by(desc(SyncProgress.started_at), desc(SyncProgress.id)).first()


def get_progress_credentials(progress: SyncProgress) -> dict[str, Any]:
    return decrypt_json(progress.credentials_encrypted)


def mark_running(db: Session, progress: SyncProgress) -> SyncProgress:
    if progress.status != STATUS_RUNNING:
        progress.status = STATUS_RUNNING
        db.commit()
        db.refresh(progress)
    return progress


def record_chunk(
    db: Session,
    progress: SyncProgress,
    *,
    days_in_chunk: int,
    synced_in_chunk: int = 0,
    last_processed_date: date | None,
) -> SyncProgress:
    progress.current_chunk = progress.current_chunk + 1
    progress.processed_days = progress.processed_days + days_in_chunk
    progress.synced_days = (progress.synced_days or 0) + synced_in_chunk
    if last_processed_date is not None:
        progress.last_processed_date = last_processed_date
    db.commit()
    db.refresh(progress)
    return progress


def delete_progress(db: Session, progress: SyncProgress | int) -> bool:
    if isinstance(progress, int):
        progress = get_progress(db, progress)
    if progress is None:
        return False
    db.delete(progress)
    db.commit()
    return True


def progress_percentage(progress: SyncProgress) -> float:
    if not progress.total_days:
        return 0.0
    return round(min(100.0, 100.0 * progress.processed_days / progress.total_days), 1)
