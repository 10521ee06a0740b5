import logging

from sqlalchemy import desc
from sqlalchemy.orm import Session

from reconciler.core.config import settings
from reconciler.core.platforms import validate_log_level
from reconciler.models.sync_logs import SyncLog

logger = logging.getLogger(__name__)

_PROCESS_LEVELS = {"info": logging.INFO, "success": logging.INFO, "error": logging.ERROR}


def append_log(
    db: Session,
    app_id: int,
    message: str,
    *,
    level: str = "info",
    platform: str | None = None,
) -> SyncLog:
    """Write a user-facing sync log line and mirror it to the process log."""
    level = validate_log_level(level)
    entry = SyncLog(app_id=app_id, message=message, level=level, platform=platform)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.log(
        _PROCESS_LEVELS[level],
        message,
        extra={"app_id": app_id, "platform": platform, "sync_level": level},
    )
    return entry


def list_logs(db: Session, app_id: int, *, limit: int | None = None) -> list[SyncLog]:
    limit = limit or settings.SYNC_LOG_DEFAULT_LIMIT
    return (
        db.query(SyncLog)
        .filter(SyncLog.app_id == app_id)
        .order_by(desc(SyncLog.timestamp), desc(SyncLog.id))
        .limit(limit)
        .all()
    )


def clear_logs(db: Session, app_id: int) -> int:
    deleted = db.query(SyncLog).filter(SyncLog.app_id == app_id).delete(synchronize_session=False)
    db.commit()
    return deleted
