"""Marketplace daily snapshots from merged report tables."""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from reconciler.core.currency import round_money
from reconciler.models.metrics_snapshots import MetricsSnapshot
from reconciler.reports.types import ZERO, RevenueData, SubscriptionMetrics


def rolling_mrr(revenue_today: Decimal, history: Sequence[MetricsSnapshot]) -> Decimal:
    """Trailing 30 days of VAT-exclusive revenue, or today's figure times 30."""
    if not history:
        return round_money(revenue_today * 30) if revenue_today > 0 else ZERO
    total = sum((Decimal(str(s.revenue or 0)) for s in history), ZERO) + revenue_today
    return round_money(total) if total > 0 else ZERO


def build_snapshot_values(
    revenue: RevenueData | None,
    metrics: SubscriptionMetrics | None,
    *,
    history: Sequence[MetricsSnapshot] = (),
) -> dict[str, int | Decimal]:
    revenue = revenue or RevenueData()
    metrics = metrics or SubscriptionMetrics()

    new_subscriptions = metrics.new_subscriptions
    # Every charged transaction is either a new subscription or a renewal.
    if revenue.transactions > new_subscriptions:
        renewals = revenue.transactions - new_subscriptions
    else:
        renewals = metrics.renewals

    paid = metrics.paid or max(0, metrics.active - metrics.trial)

    return {
        "active_subscribers": metrics.active,
        "trial_subscribers": metrics.trial,
        "paid_subscribers": paid,
        "monthly_subscribers": metrics.monthly,
        "yearly_subscribers": metrics.yearly,
        "first_payments": new_subscriptions,
        "renewals": renewals,
        "cancellations": metrics.canceled_subscriptions,
        "churn": metrics.canceled_subscriptions,
        "refunds": 0,
        "grace_events": 0,
        "paybacks": 0,
        "charged_revenue": round_money(revenue.gross),
        "revenue": round_money(revenue.net),
        "proceeds": round_money(revenue.proceeds),
        "mrr": rolling_mrr(round_money(revenue.net), history),
    }
