from typing import Iterable

from sqlalchemy import or_
from sqlalchemy.orm import Session

from reconciler.models.subscriptions import Subscription
from reconciler.reports.types import SubscriptionRecord

# Fields refreshed in place on every sighting after the first.
_MUTABLE_FIELDS = (
    "customer_id",
    "status",
    "product_id",
    "end_date",
    "is_trial",
    "will_cancel",
    "is_in_grace",
    "trial_end",
    "price_amount",
    "price_interval",
    "price_interval_count",
    "price_currency",
    "raw_data",
)


def get_subscription(db: Session, app_id: int, platform: str, external_id: str) -> Subscription | None:
    return (
        db.query(Subscription)
        .filter(
            Subscription.app_id == app_id,
            Subscription.platform == platform,
            Subscription.external_id == external_id,
        )
        .first()
    )


def upsert_subscriptions(
    db: Session,
    app_id: int,
    platform: str,
    records: Iterable[SubscriptionRecord],
) -> dict[str, int]:
    """Insert new subscriptions and refresh known ones, keyed on external id."""
    records = list(records)
    if not records:
        return {"created": 0, "updated": 0}
    external_ids = {record.external_id for record in records}
    existing = {
        row.external_id: row
        for row in db.query(Subscription)
        .filter(
            Subscription.app_id == app_id,
            Subscription.platform == platform,
            Subscription.external_id.in_(external_ids),
        )
        .all()
    }
    created = updated = 0
    for record in records:
        row = existing.get(record.external_id)
        if row is None:
            row = Subscription(
                app_id=app_id,
                platform=platform,
                external_id=record.external_id,
                start_date=record.start_date,
            )
            db.add(row)
            existing[record.external_id] = row
            created += 1
        else:
            updated += 1
        for name in _MUTABLE_FIELDS:
            setattr(row, name, getattr(record, name))
    db.commit()
    return {"created": created, "updated": updated}


def subscription_id_map(db: Session, app_id: int, platform: str, external_ids: Iterable[str]) -> dict[str, int]:
    ids = set(external_ids)
    if not ids:
        return {}
    rows = (
        db.query(Subscription.external_id, Subscription.id)
        .filter(
            Subscription.app_id == app_id,
            Subscription.platform == platform,
            Subscription.external_id.in_(ids),
        )
        .all()
    )
    return {external_id: sub_id for external_id, sub_id in rows}


def list_subscriptions_alive_between(
    db: Session,
    app_id: int,
    platform: str,
    start_ms: int,
    end_ms: int,
) -> list[Subscription]:
    """Subscriptions that started by ``end_ms`` and had not ended before ``start_ms``."""
    return (
        db.query(Subscription)
        .filter(
            Subscription.app_id == app_id,
            Subscription.platform == platform,
            Subscription.start_date <= end_ms,
            or_(Subscription.end_date.is_(None), Subscription.end_date >= start_ms),
        )
        .order_by(Subscription.id.asc())
        .all()
    )


def list_subscriptions(db: Session, app_id: int, platform: str | None = None) -> list[Subscription]:
    query = db.query(Subscription).filter(Subscription.app_id == app_id)
    if platform:
        query = query.filter(Subscription.platform == platform)
    return query.order_by(Subscription.id.asc()).all()
