from sqlalchemy import desc
from sqlalchemy.orm import Session

from reconciler.core.time import utcnow
from reconciler.models.sync_sessions import SyncSession

STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"


def get_active_session(db: Session, app_id: int) -> SyncSession | None:
    return (
        db.query(SyncSession)
        .filter(SyncSession.app_id == app_id, SyncSession.status == STATUS_ACTIVE)
        .order_by(desc(SyncSession.started_at), desc(SyncSession.id))
        .first()
    )


def get_session(db: Session, session_id: int) -> SyncSession | None:
    return db.query(SyncSession).filter(SyncSession.id == session_id).first()


def cancel_active_sessions(db: Session, app_id: int) -> int:
    sessions = (
        db.query(SyncSession)
        .filter(SyncSession.app_id == app_id, SyncSession.status == STATUS_ACTIVE)
        .all()
    )
    now = utcnow()
    for session in sessions:
        session.status = STATUS_CANCELLED
        session.finished_at = now
    if sessions:
        db.commit()
    return len(sessions)


def start_session(db: Session, app_id: int) -> SyncSession:
    """Open a new session; any session still active for the app is cancelled.

    Two syncs for one app must never overlap, and the cancelled one notices
    at its next cooperative check.
    """
    cancel_active_sessions(db, app_id)
    session = SyncSession(app_id=app_id, status=STATUS_ACTIVE, started_at=utcnow())
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def is_cancelled(db: Session, session_id: int) -> bool:
    session = get_session(db, session_id)
    if session is None:
        return True
    db.refresh(session)
    return session.status == STATUS_CANCELLED


def complete_session(db: Session, session_id: int) -> SyncSession | None:
    session = get_session(db, session_id)
    if not session:
        return None
    if session.status == STATUS_ACTIVE:
        session.status = STATUS_COMPLETED
        session.finished_at = utcnow()
        db.commit()
        db.refresh(session)
    return session


def cancel_session(db: Session, session_id: int) -> SyncSession | None:
    session = get_session(db, session_id)
    if not session:
        return None
    if session.status == STATUS_ACTIVE:
        session.status = STATUS_CANCELLED
        session.finished_at = utcnow()
        db.commit()
        db.refresh(session)
    return session
