"""
App store daily snapshot assembly.

Stocks come from the subscription summary. Flows are resolved per field:

1. the subscriber report's labelled events,
2. the summary's own event columns, then the subscription-event report,
3. the day-over-day change in paid subscribers.

Revenue comes only from the subscriber report, already converted to the
app currency by the parser.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from reconciler.core.currency import round_money
from reconciler.metrics.tiers import apply_paid_delta, pick
from reconciler.models.metrics_snapshots import MetricsSnapshot
from reconciler.reports.types import ZERO, EventCounts, EventData, SummaryReport

FLOW_FIELDS = ("first_payments", "renewals", "cancellations", "refunds")


def estimate_mrr(paid: int, revenue_today: Decimal, history: Sequence[MetricsSnapshot]) -> Decimal:
    """Paid subscribers times revenue per paid subscriber over the window.

    ``history`` holds the snapshots of the preceding 30 days. Without any,
    today's revenue times 30 stands in.
    """
    if paid <= 0:
        return ZERO
    if not history:
        return round_money(revenue_today * 30)
    total_revenue = sum((Decimal(str(s.revenue or 0)) for s in history), ZERO) + revenue_today
    total_paid = sum(int(s.paid_subscribers or 0) for s in history) + paid
    average_paid = Decimal(total_paid) / Decimal(len(history) + 1)
    if average_paid <= 0:
        return ZERO
    return round_money(paid * (total_revenue / average_paid))


def build_snapshot_values(
    summary: SummaryReport,
    events: EventData | None = None,
    event_counts: EventCounts | None = None,
    *,
    previous: MetricsSnapshot | None = None,
    history: Sequence[MetricsSnapshot] = (),
) -> dict[str, int | Decimal]:
    events = events or EventData()
    event_counts = event_counts or EventCounts()

    values: dict[str, int | Decimal] = {
        "active_subscribers": summary.active,
        "trial_subscribers": summary.trial,
        "paid_subscribers": summary.paid,
        "monthly_subscribers": summary.monthly,
        "yearly_subscribers": summary.yearly,
        "grace_events": pick(summary.grace_events, events.grace_events, event_counts.grace_events),
        "paybacks": 0,
    }
    for name in FLOW_FIELDS:
        values[name] = pick(
            getattr(events, name) if events.has_event_column else 0,
            getattr(summary, name),
            getattr(event_counts, name),
        )

    apply_paid_delta(values, previous.paid_subscribers if previous is not None else None)
    values["churn"] = values["cancellations"]

    if events.revenue_extracted:
        values.update(
            {
                "charged_revenue": events.charged_revenue,
                "revenue": events.revenue,
                "proceeds": events.proceeds,
                "monthly_plan_charged_revenue": events.monthly.charged,
                "monthly_plan_revenue": events.monthly.revenue,
                "monthly_plan_proceeds": events.monthly.proceeds,
                "yearly_plan_charged_revenue": events.yearly.charged,
                "yearly_plan_revenue": events.yearly.revenue,
                "yearly_plan_proceeds": events.yearly.proceeds,
            }
        )
    revenue_today = events.revenue if events.revenue_extracted else ZERO
    values["mrr"] = estimate_mrr(summary.paid, revenue_today, history)
    return values
