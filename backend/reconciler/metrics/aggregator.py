"""
Daily snapshot computation from stored subscriptions and revenue events.

Used for sources that deliver individual records (the card processor). For a
day window ``[start, end]`` in epoch milliseconds:

* active: started by ``end`` and not ended by ``start``
* trial: active with ``trial_end`` after ``start``
* paid: active minus trial, split into monthly and yearly by plan interval
* MRR: each paid subscription's price normalized to a month, converted with
  the rate of the day's month
* flows: same-day revenue events by type, cancellations from subscriptions
  that ended inside the window; churn equals cancellations
* revenue: charged, VAT-exclusive and proceeds, split by plan interval, with
  refunds subtracted
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from reconciler.core.config import settings
from reconciler.core.currency import CurrencyConverter, round_money, to_decimal
from reconciler.core.time import day_bounds_ms, year_month
from reconciler.core.vat import revenue_excluding_vat
from reconciler.crud.revenue_events import list_events_between
from reconciler.crud.snapshots import upsert_snapshot
from reconciler.crud.subscriptions import list_subscriptions_alive_between
from reconciler.models.metrics_snapshots import MetricsSnapshot
from reconciler.models.revenue_events import RevenueEvent
from reconciler.models.subscriptions import Subscription
from reconciler.reports.types import (
    EVENT_FIRST_PAYMENT,
    EVENT_REFUND,
    EVENT_RENEWAL,
    INTERVAL_MONTH,
    INTERVAL_YEAR,
    STATUS_CANCELED,
    ZERO,
    PlanSplit,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("100")
WEEKS_PER_MONTH = Decimal("4.33")
DAYS_PER_MONTH = Decimal("30")
MONTHS_PER_YEAR = Decimal("12")


def monthly_price(amount, interval: str | None, interval_count: int | None = 1) -> Decimal:
    """Normalize a recurring price to its monthly equivalent."""
    value = to_decimal(amount)
    count = Decimal(interval_count or 1)
    interval = (interval or "").lower()
    if interval == "day":
        return value * DAYS_PER_MONTH / count
    if interval == "week":
        return value * WEEKS_PER_MONTH / count
    if interval == "year":
        return value / (MONTHS_PER_YEAR * count)
    if interval == "month":
        return value / count
    return value


def _is_active(sub: Subscription, start_ms: int, end_ms: int) -> bool:
    return sub.start_date <= end_ms and (sub.end_date is None or sub.end_date > start_ms)


def _is_trial(sub: Subscription, start_ms: int) -> bool:
    return sub.trial_end is not None and sub.trial_end > start_ms


def subscription_mrr(
    sub: Subscription,
    *,
    currency: str,
    converter: CurrencyConverter,
    as_of_month: str | None,
) -> Decimal:
    if not sub.price_amount:
        return ZERO
    major = to_decimal(sub.price_amount) / CENTS
    monthly = monthly_price(major, sub.price_interval, sub.price_interval_count)
    return converter.convert_exact(monthly, sub.price_currency or currency, currency, as_of_month)


def event_revenue(
    event: RevenueEvent,
    *,
    currency: str,
    converter: CurrencyConverter,
    as_of_month: str | None,
    fee_rate: Decimal,
) -> tuple[Decimal, Decimal, Decimal]:
    """Return (charged, VAT-exclusive, proceeds) for one event in ``currency``."""
    amount = to_decimal(event.amount)
    if event.amount_excluding_tax is not None:
        excluding = to_decimal(event.amount_excluding_tax)
    else:
        excluding = revenue_excluding_vat(amount, event.country)
    if event.amount_proceeds is not None:
        proceeds = to_decimal(event.amount_proceeds) - (amount - excluding)
    else:
        proceeds = excluding * (Decimal("1") - fee_rate)

    source = event.currency or currency
    return (
        converter.convert(amount, source, currency, as_of_month),
        converter.convert(excluding, source, currency, as_of_month),
        converter.convert(proceeds, source, currency, as_of_month),
    )


def compute_day_values(
    db: Session,
    app_id: int,
    platform: str,
    day: date,
    *,
    currency: str,
    converter: CurrencyConverter | None = None,
    fee_rate: float | None = None,
) -> dict[str, int | Decimal]:
    converter = converter or CurrencyConverter(db)
    fee = Decimal(str(settings.ASSUMED_PLATFORM_FEE_RATE if fee_rate is None else fee_rate))
    as_of_month = year_month(day)
    start_ms, end_ms = day_bounds_ms(day)

    subscriptions = list_subscriptions_alive_between(db, app_id, platform, start_ms, end_ms)
    active = [sub for sub in subscriptions if _is_active(sub, start_ms, end_ms)]
    trial = [sub for sub in active if _is_trial(sub, start_ms)]
    paying = [sub for sub in active if not _is_trial(sub, start_ms)]

    mrr = ZERO
    for sub in paying:
        mrr += subscription_mrr(sub, currency=currency, converter=converter, as_of_month=as_of_month)

    cancellations = sum(
        1
        for sub in subscriptions
        if sub.status == STATUS_CANCELED and sub.end_date is not None and start_ms <= sub.end_date <= end_ms
    )

    counts = {EVENT_FIRST_PAYMENT: 0, EVENT_RENEWAL: 0, EVENT_REFUND: 0}
    totals = PlanSplit()
    monthly = PlanSplit()
    yearly = PlanSplit()
    for event in list_events_between(db, app_id, platform, start_ms, end_ms):
        if event.event_type in counts:
            counts[event.event_type] += 1
        charged, revenue, proceeds = event_revenue(
            event,
            currency=currency,
            converter=converter,
            as_of_month=as_of_month,
            fee_rate=fee,
        )
        sign = -1 if event.event_type == EVENT_REFUND else 1
        totals.add(charged, revenue, proceeds, sign)
        interval = event.subscription.price_interval if event.subscription is not None else None
        if interval == INTERVAL_MONTH:
            monthly.add(charged, revenue, proceeds, sign)
        elif interval == INTERVAL_YEAR:
            yearly.add(charged, revenue, proceeds, sign)

    return {
        "active_subscribers": len(active),
        "trial_subscribers": len(trial),
        "paid_subscribers": len(paying),
        "monthly_subscribers": sum(1 for sub in paying if sub.price_interval == INTERVAL_MONTH),
        "yearly_subscribers": sum(1 for sub in paying if sub.price_interval == INTERVAL_YEAR),
        "first_payments": counts[EVENT_FIRST_PAYMENT],
        "renewals": counts[EVENT_RENEWAL],
        "refunds": counts[EVENT_REFUND],
        "cancellations": cancellations,
        "churn": cancellations,
        "grace_events": sum(1 for sub in active if sub.is_in_grace),
        "paybacks": 0,
        "mrr": round_money(mrr),
        "charged_revenue": totals.charged,
        "revenue": totals.revenue,
        "proceeds": totals.proceeds,
        "monthly_plan_charged_revenue": monthly.charged,
        "monthly_plan_revenue": monthly.revenue,
        "monthly_plan_proceeds": monthly.proceeds,
        "yearly_plan_charged_revenue": yearly.charged,
        "yearly_plan_revenue": yearly.revenue,
        "yearly_plan_proceeds": yearly.proceeds,
    }


def aggregate_day(
    db: Session,
    app_id: int,
    platform: str,
    day: date,
    *,
    currency: str,
    converter: CurrencyConverter | None = None,
    fee_rate: float | None = None,
) -> MetricsSnapshot:
    values = compute_day_values(
        db,
        app_id,
        platform,
        day,
        currency=currency,
        converter=converter,
        fee_rate=fee_rate,
    )
    logger.debug(
        "snapshot computed",
        extra={"app_id": app_id, "platform": platform, "date": day.isoformat(), "active": values["active_subscribers"]},
    )
    return upsert_snapshot(db, app_id, platform, day, values)
