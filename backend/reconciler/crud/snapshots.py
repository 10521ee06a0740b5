"""Snapshot store.

Exactly one row per (app, platform, date) is the contract, but the table has
no unique constraint because older data carries duplicates. Every write
therefore looks up all matching rows, overwrites the first and deletes the
rest.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy import desc
from sqlalchemy.orm import Session

from reconciler.core.currency import round_money
from reconciler.core.metrics import record_snapshot_upsert
from reconciler.core.platforms import UNIFIED, validate_platform
from reconciler.models.metrics_snapshots import COUNT_FIELDS, MONEY_FIELDS, NUMERIC_FIELDS, MetricsSnapshot

logger = logging.getLogger(__name__)

STOCK_FIELDS = (
    "active_subscribers",
    "trial_subscribers",
    "paid_subscribers",
    "monthly_subscribers",
    "yearly_subscribers",
    "mrr",
)


def _coerce(name: str, value: Any) -> int | float:
    if value is None:
        return 0 if name in COUNT_FIELDS else 0.0
    if name in COUNT_FIELDS:
        return int(value)
    return float(round_money(value))


def _matching(db: Session, app_id: int, platform: str, day: date) -> list[MetricsSnapshot]:
    return (
        db.query(MetricsSnapshot)
        .filter(
            MetricsSnapshot.app_id == app_id,
            MetricsSnapshot.platform == platform,
            MetricsSnapshot.date == day,
        )
        .order_by(MetricsSnapshot.id.asc())
        .all()
    )


def upsert_snapshot(
    db: Session,
    app_id: int,
    platform: str,
    day: date,
    values: Mapping[str, Any],
) -> MetricsSnapshot:
    """Write the full set of metrics for one (app, platform, date).

    Fields missing from ``values`` are written as zero, so a recomputation
    never leaves stale figures behind.
    """
    platform = validate_platform(platform, allow_unified=True)
    rows = _matching(db, app_id, platform, day)
    created = not rows
    if created:
        snapshot = MetricsSnapshot(app_id=app_id, platform=platform, date=day)
        db.add(snapshot)
    else:
        snapshot = rows[0]
    for name in NUMERIC_FIELDS:
        setattr(snapshot, name, _coerce(name, values.get(name)))
    duplicates = rows[1:]
    for duplicate in duplicates:
        db.delete(duplicate)
    db.commit()
    db.refresh(snapshot)
    if duplicates:
        logger.info(
            "duplicate snapshots removed",
            extra={"app_id": app_id, "platform": platform, "date": day.isoformat(), "count": len(duplicates)},
        )
    record_snapshot_upsert(platform, created=created, duplicates_removed=len(duplicates))
    return snapshot


def snapshot_values(snapshot: MetricsSnapshot | None) -> dict[str, int | float]:
    if snapshot is None:
        return {name: (0 if name in COUNT_FIELDS else 0.0) for name in NUMERIC_FIELDS}
    return {name: getattr(snapshot, name) or 0 for name in NUMERIC_FIELDS}


def get_snapshot(db: Session, app_id: int, platform: str, day: date) -> MetricsSnapshot | None:
    rows = _matching(db, app_id, platform, day)
    return rows[0] if rows else None


def get_previous_snapshot(db: Session, app_id: int, platform: str, day: date) -> MetricsSnapshot | None:
    """Most recent snapshot strictly before ``day``."""
    return (
        db.query(MetricsSnapshot)
        .filter(
            MetricsSnapshot.app_id == app_id,
            MetricsSnapshot.platform == platform,
            MetricsSnapshot.date < day,
        )
        .order_by(desc(MetricsSnapshot.date), MetricsSnapshot.id.asc())
        .first()
    )


def list_snapshots(
    db: Session,
    app_id: int,
    platform: str,
    start: date,
    end: date,
) -> list[MetricsSnapshot]:
    return (
        db.query(MetricsSnapshot)
        .filter(
            MetricsSnapshot.app_id == app_id,
            MetricsSnapshot.platform == platform,
            MetricsSnapshot.date >= start,
            MetricsSnapshot.date <= end,
        )
        .order_by(MetricsSnapshot.date.asc(), MetricsSnapshot.id.asc())
        .all()
    )


def trailing_snapshots(
    db: Session,
    app_id: int,
    platform: str,
    day: date,
    *,
    days: int = 30,
) -> list[MetricsSnapshot]:
    """Snapshots in the ``days`` window ending the day before ``day``."""
    return list_snapshots(db, app_id, platform, day - timedelta(days=days), day - timedelta(days=1))


def carry_forward_snapshot(db: Session, app_id: int, platform: str, day: date) -> MetricsSnapshot | None:
    """Copy the previous day's stock figures onto ``day`` with zero flows.

    Used when a source reports that nothing happened on a day. Returns None
    when there is nothing to carry forward.
    """
    previous = get_previous_snapshot(db, app_id, platform, day)
    if previous is None:
        return None
    values = {name: getattr(previous, name) for name in STOCK_FIELDS}
    return upsert_snapshot(db, app_id, platform, day, values)


def rollup_unified(db: Session, app_id: int, day: date) -> MetricsSnapshot:
    """Sum every platform snapshot for ``day`` into the unified snapshot."""
    rows = (
        db.query(MetricsSnapshot)
        .filter(
            MetricsSnapshot.app_id == app_id,
            MetricsSnapshot.date == day,
            MetricsSnapshot.platform != UNIFIED,
        )
        .order_by(MetricsSnapshot.platform.asc(), MetricsSnapshot.id.asc())
        .all()
    )
    totals: dict[str, Any] = {name: (0 if name in COUNT_FIELDS else Decimal("0")) for name in NUMERIC_FIELDS}
    seen_platforms: set[str] = set()
    for row in rows:
        # A platform with leftover duplicates counts once.
        if row.platform in seen_platforms:
            continue
        seen_platforms.add(row.platform)
        for name in COUNT_FIELDS:
            totals[name] += int(getattr(row, name) or 0)
        for name in MONEY_FIELDS:
            totals[name] += Decimal(str(getattr(row, name) or 0))
    return upsert_snapshot(db, app_id, UNIFIED, day, totals)


def delete_snapshots(db: Session, app_id: int, platform: str | None = None) -> int:
    query = db.query(MetricsSnapshot).filter(MetricsSnapshot.app_id == app_id)
    if platform:
        query = query.filter(MetricsSnapshot.platform == platform)
    deleted = query.delete(synchronize_session=False)
    db.commit()
    return deleted


def platform_snapshot_dates(db: Session, app_id: int, start: date, end: date) -> set[date]:
    """Dates in ``[start, end]`` that have at least one platform snapshot."""
    rows = (
        db.query(MetricsSnapshot.date)
        .filter(
            MetricsSnapshot.app_id == app_id,
            MetricsSnapshot.platform != UNIFIED,
            MetricsSnapshot.date >= start,
            MetricsSnapshot.date <= end,
        )
        .distinct()
        .all()
    )
    return {row[0] for row in rows}
