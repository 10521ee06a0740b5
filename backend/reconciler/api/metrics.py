from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from reconciler.core.db import get_db
from reconciler.core.platforms import UNIFIED, validate_platform
from reconciler.core.time import utctoday
from reconciler.crud.apps import get_app
from reconciler.crud.exchange_rates import record_rate
from reconciler.crud.snapshots import list_snapshots
from reconciler.schemas.metrics import ExchangeRateCreate, ExchangeRateRead, SnapshotRead


router = APIRouter(tags=["metrics"])

DEFAULT_RANGE_DAYS = 30


@router.get("/apps/{app_id}/metrics/snapshots", response_model=list[SnapshotRead])
def list_snapshots_endpoint(
    app_id: int,
    platform: str = UNIFIED,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db=Depends(get_db),
):
    if not get_app(db, app_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="App not found")
    try:
        platform = validate_platform(platform, allow_unified=True)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    end = end or utctoday()
    start = start or end - timedelta(days=DEFAULT_RANGE_DAYS - 1)
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must not be after end")
    return list_snapshots(db, app_id, platform, start, end)


@router.post("/exchange-rates", response_model=ExchangeRateRead, status_code=status.HTTP_201_CREATED)
def record_exchange_rate_endpoint(payload: ExchangeRateCreate, db=Depends(get_db)):
    return record_rate(
        db,
        payload.from_currency,
        payload.to_currency,
        payload.rate,
        year_month=payload.year_month,
    )
