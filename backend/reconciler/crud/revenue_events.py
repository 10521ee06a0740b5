import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from reconciler.core.currency import normalize_currency, round_money
from reconciler.core.metrics import record_revenue_events
from reconciler.crud.subscriptions import subscription_id_map
from reconciler.models.revenue_events import RevenueEvent
from reconciler.reports.types import RevenueEventRecord

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    stored: int = 0
    skipped_duplicate: int = 0
    skipped_orphan: int = 0
    proceeds_filled: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "stored": self.stored,
            "skipped_duplicate": self.skipped_duplicate,
            "skipped_orphan": self.skipped_orphan,
            "proceeds_filled": self.proceeds_filled,
        }


def _money(value) -> float | None:
    if value is None:
        return None
    return float(round_money(value))


def _dedup_key(subscription_id: int, timestamp: int, amount: float) -> tuple[int, int, float]:
    return subscription_id, int(timestamp), round(float(amount), 2)


def fill_proceeds_if_absent(event: RevenueEvent, proceeds) -> bool:
    """Patch ``amount_proceeds`` only when it was never set."""
    if proceeds is None or event.amount_proceeds is not None:
        return False
    event.amount_proceeds = _money(proceeds)
    return True


def store_revenue_events(
    db: Session,
    app_id: int,
    platform: str,
    records: Iterable[RevenueEventRecord],
) -> IngestResult:
    """Insert revenue events, skipping any already stored.

    Two events with the same subscription, timestamp and amount are the same
    economic event. A duplicate that arrives with a proceeds figure fills the
    stored row's proceeds if it had none. Events whose subscription is unknown
    are skipped.
    """
    records = list(records)
    result = IngestResult()
    if not records:
        return result

    id_map = subscription_id_map(db, app_id, platform, {r.subscription_external_id for r in records})
    timestamps = {int(r.timestamp) for r in records}
    seen: dict[tuple[int, int, float], RevenueEvent] = {}
    if id_map:
        for row in (
            db.query(RevenueEvent)
            .filter(
                RevenueEvent.subscription_id.in_(set(id_map.values())),
                RevenueEvent.timestamp.in_(timestamps),
            )
            .all()
        ):
            seen[_dedup_key(row.subscription_id, row.timestamp, row.amount)] = row

    for record in records:
        subscription_id = id_map.get(record.subscription_external_id)
        if subscription_id is None:
            result.skipped_orphan += 1
            continue
        amount = _money(record.amount)
        key = _dedup_key(subscription_id, record.timestamp, amount)
        existing = seen.get(key)
        if existing is not None:
            result.skipped_duplicate += 1
            if fill_proceeds_if_absent(existing, record.amount_proceeds):
                result.proceeds_filled += 1
            continue
        event = RevenueEvent(
            app_id=app_id,
            platform=platform,
            subscription_id=subscription_id,
            event_type=record.event_type,
            amount=amount,
            amount_excluding_tax=_money(record.amount_excluding_tax),
            amount_proceeds=_money(record.amount_proceeds),
            currency=normalize_currency(record.currency),
            country=(record.country or None),
            timestamp=int(record.timestamp),
            external_id=record.external_id,
            raw_data=record.raw_data,
        )
        db.add(event)
        seen[key] = event
        result.stored += 1

    db.commit()
    record_revenue_events(platform, "stored", result.stored)
    record_revenue_events(platform, "duplicate", result.skipped_duplicate)
    record_revenue_events(platform, "orphan", result.skipped_orphan)
    if result.skipped_orphan:
        logger.warning(
            "revenue events without a known subscription skipped",
            extra={"app_id": app_id, "platform": platform, "count": result.skipped_orphan},
        )
    return result


def list_events_between(
    db: Session,
    app_id: int,
    platform: str,
    start_ms: int,
    end_ms: int,
) -> list[RevenueEvent]:
    return (
        db.query(RevenueEvent)
        .filter(
            RevenueEvent.app_id == app_id,
            RevenueEvent.platform == platform,
            RevenueEvent.timestamp >= start_ms,
            RevenueEvent.timestamp <= end_ms,
        )
        .order_by(RevenueEvent.timestamp.asc(), RevenueEvent.id.asc())
        .all()
    )


def count_events(db: Session, app_id: int, platform: str | None = None) -> int:
    query = db.query(RevenueEvent).filter(RevenueEvent.app_id == app_id)
    if platform:
        query = query.filter(RevenueEvent.platform == platform)
    return query.count()
