from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from reconciler.core.db import get_db
from reconciler.core.platforms import validate_platform
from reconciler.core.queue import JOB_PLATFORM_SYNC, enqueue_job
from reconciler.crud.apps import get_app
from reconciler.crud.platform_connections import reset_last_sync
from reconciler.crud.sync_logs import list_logs
from reconciler.crud.sync_progress import get_progress_for_app, progress_percentage
from reconciler.crud.sync_sessions import cancel_active_sessions, get_active_session, start_session
from reconciler.schemas.sync import (
    SyncLogRead,
    SyncProgressRead,
    SyncResetResponse,
    SyncSessionRead,
    SyncTriggerRequest,
)


router = APIRouter(prefix="/apps/{app_id}/sync", tags=["sync"])


def _require_app(db, app_id: int):
    app = get_app(db, app_id)
    if not app:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="App not found")
    return app


@router.post("", response_model=SyncSessionRead, status_code=status.HTTP_202_ACCEPTED)
def trigger_sync_endpoint(app_id: int, payload: SyncTriggerRequest, db=Depends(get_db)):
    _require_app(db, app_id)
    platform = None
    if payload.platform:
        try:
            platform = validate_platform(payload.platform)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    session = start_session(db, app_id)
    enqueue_job(
        db,
        job_type=JOB_PLATFORM_SYNC,
        payload={
            "app_id": app_id,
            "platform": platform,
            "force_historical": payload.force_historical,
            "session_id": session.id,
        },
        app_id=app_id,
    )
    return session


@router.post("/cancel")
def cancel_sync_endpoint(app_id: int, db=Depends(get_db)):
    _require_app(db, app_id)
    cancelled = cancel_active_sessions(db, app_id)
    if not cancelled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active sync")
    return {"cancelled": cancelled}


@router.get("/active", response_model=Optional[SyncSessionRead])
def active_sync_endpoint(app_id: int, db=Depends(get_db)):
    _require_app(db, app_id)
    return get_active_session(db, app_id)


@router.get("/progress", response_model=Optional[SyncProgressRead])
def sync_progress_endpoint(app_id: int, platform: Optional[str] = None, db=Depends(get_db)):
    _require_app(db, app_id)
    progress = get_progress_for_app(db, app_id, platform=platform)
    if progress is None:
        return None
    result = SyncProgressRead.model_validate(progress)
    result.percentage = progress_percentage(progress)
    return result


@router.get("/logs", response_model=list[SyncLogRead])
def sync_logs_endpoint(
    app_id: int,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db=Depends(get_db),
):
    _require_app(db, app_id)
    return list_logs(db, app_id, limit=limit)


@router.post("/reset", response_model=SyncResetResponse)
def reset_sync_endpoint(app_id: int, platform: Optional[str] = None, db=Depends(get_db)):
    _require_app(db, app_id)
    try:
        count = reset_last_sync(db, app_id, platform=platform)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return SyncResetResponse(connections_reset=count)
