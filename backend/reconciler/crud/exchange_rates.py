from datetime import datetime

from sqlalchemy import desc
from sqlalchemy.orm import Session

from reconciler.core.currency import normalize_currency
from reconciler.core.time import utcnow
from reconciler.models.exchange_rates import ExchangeRate


def record_rate(
    db: Session,
    from_currency: str,
    to_currency: str,
    rate: float,
    *,
    year_month: str | None = None,
    recorded_at: datetime | None = None,
) -> ExchangeRate:
    if rate is None or float(rate) <= 0:
        raise ValueError("Exchange rate must be positive")
    row = ExchangeRate(
        from_currency=normalize_currency(from_currency),
        to_currency=normalize_currency(to_currency),
        rate=float(rate),
        year_month=year_month,
        recorded_at=recorded_at or utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def latest_rate(db: Session, from_currency: str, to_currency: str) -> ExchangeRate | None:
    return (
        db.query(ExchangeRate)
        .filter(
            ExchangeRate.from_currency == normalize_currency(from_currency),
            ExchangeRate.to_currency == normalize_currency(to_currency),
        )
        .order_by(desc(ExchangeRate.recorded_at), desc(ExchangeRate.id))
        .first()
    )


def list_rates(db: Session, *, from_currency: str | None = None, limit: int = 100) -> list[ExchangeRate]:
    query = db.query(ExchangeRate)
    if from_currency:
        query = query.filter(ExchangeRate.from_currency == normalize_currency(from_currency))
    return query.order_by(desc(ExchangeRate.recorded_at), desc(ExchangeRate.id)).limit(limit).all()
