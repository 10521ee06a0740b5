from decimal import Decimal

import reconciler.models  # noqa: F401
from reconciler.metrics.app_store import build_snapshot_values, estimate_mrr
from reconciler.metrics.tiers import pick
from reconciler.models.metrics_snapshots import MetricsSnapshot
from reconciler.reports.types import EventCounts, EventData, PlanSplit, SummaryReport


def _summary(**overrides):
    base = dict(has_data=True, active=12, trial=2, paid=10, monthly=6, yearly=4)
    base.update(overrides)
    return SummaryReport(**base)


def test_pick_takes_first_non_zero_value():
    assert pick(0, None, 3, 5) == 3
    assert pick(Decimal("0"), Decimal("1.5")) == Decimal("1.5")
    assert pick(0, 0) == 0


def test_subscriber_report_flows_win_over_summary_and_event_report():
    events = EventData(has_event_column=True, renewals=4)
    counts = EventCounts(has_data=True, renewals=9, refunds=2, first_payments=1)
    values = build_snapshot_values(_summary(renewals=7), events, counts)
    assert values["renewals"] == 4
    assert values["refunds"] == 2
    assert values["first_payments"] == 1
    assert values["active_subscribers"] == 12


def test_event_column_missing_falls_back_to_summary():
    events = EventData(has_event_column=False, renewals=4)
    values = build_snapshot_values(_summary(renewals=7), events)
    assert values["renewals"] == 7


def test_paid_drop_fills_cancellations_and_churn():
    previous = MetricsSnapshot(paid_subscribers=10)
    values = build_snapshot_values(_summary(paid=8), previous=previous)
    assert values["cancellations"] == 2
    assert values["churn"] == 2
    assert values["first_payments"] == 0


def test_paid_gain_fills_first_payments_only_when_unset():
    previous = MetricsSnapshot(paid_subscribers=8)
    values = build_snapshot_values(_summary(paid=10), previous=previous)
    assert values["first_payments"] == 2

    counts = EventCounts(has_data=True, first_payments=5)
    values = build_snapshot_values(_summary(paid=10), event_counts=counts, previous=previous)
    assert values["first_payments"] == 5


def test_revenue_only_written_when_extracted():
    events = EventData(
        has_event_column=True,
        revenue_extracted=False,
        charged_revenue=Decimal("20"),
        revenue=Decimal("18"),
    )
    values = build_snapshot_values(_summary(), events)
    assert "revenue" not in values
    assert values["mrr"] == Decimal("0")

    events.revenue_extracted = True
    events.monthly = PlanSplit(Decimal("12"), Decimal("11"), Decimal("9"))
    values = build_snapshot_values(_summary(), events)
    assert values["charged_revenue"] == Decimal("20")
    assert values["revenue"] == Decimal("18")
    assert values["monthly_plan_revenue"] == Decimal("11")
    assert values["mrr"] == Decimal("540.00")


def test_estimate_mrr():
    assert estimate_mrr(0, Decimal("50"), []) == Decimal("0")
    assert estimate_mrr(4, Decimal("1.50"), []) == Decimal("45.00")
    history = [
        MetricsSnapshot(revenue=10.0, paid_subscribers=10),
        MetricsSnapshot(revenue=10.0, paid_subscribers=10),
    ]
    assert estimate_mrr(10, Decimal("10"), history) == Decimal("30.00")
