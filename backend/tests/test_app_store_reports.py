import os
from datetime import date
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("INTEGRATION_ENCRYPTION_KEY", "reconciler-test-key-0123456789ab")

from reconciler.core.currency import round_money  # noqa: E402
from reconciler.reports.app_store import (  # noqa: E402
    parse_subscriber_report,
    parse_subscription_event_report,
    parse_summary_report,
)
from reconciler.reports.columns import parse_decimal, parse_report_date, plan_interval_for  # noqa: E402


REPORT_DAY = date(2026, 3, 10)


def _tsv(*rows):
    return "\n".join("\t".join(row) for row in rows)


def _identity(amount, from_currency, to_currency):
    return round_money(amount)


SUMMARY = _tsv(
    ("Product ID", "Active Standard Price Subscriptions", "Active Free Trial Introductory Offer Subscriptions", "Subscription Duration"),
    ("com.example.monthly", "10", "2", "1 Month"),
    ("com.example.yearly", "5", "0", "1 Year"),
    ("com.example.lifetime_pass", "1", "0", ""),
)

SUBSCRIBER = _tsv(
    (
        "Event Date",
        "Product ID",
        "Event",
        "Customer Price",
        "Customer Currency",
        "Developer Proceeds",
        "Proceeds Currency",
        "Country",
        "Quantity",
    ),
    ("2026-03-10", "com.example.monthly", "", "4.99", "USD", "4.24", "USD", "US", "1"),
    ("2026-03-09", "com.example.monthly", "", "4.99", "USD", "4.24", "USD", "US", "1"),
    ("2026-03-10", "com.example.yearly", "Start Introductory Price", "49.99", "USD", "35.00", "USD", "DE", "1"),
    ("2026-03-10", "com.example.monthly", "Refund", "4.99", "USD", "4.24", "USD", "US", "1"),
)


def test_summary_report_counts_stocks_and_plan_split():
    summary = parse_summary_report(SUMMARY, REPORT_DAY)
    assert summary.has_data
    assert summary.active == 16
    assert summary.trial == 2
    assert summary.paid == 14
    assert summary.monthly == 10
    assert summary.yearly == 5
    assert "com.example.lifetime_pass" in summary.unmatched_product_ids


def test_summary_report_without_known_columns_has_no_data():
    summary = parse_summary_report(_tsv(("Foo", "Bar"), ("1", "2")), REPORT_DAY)
    assert not summary.has_data
    assert summary.diagnostics


def test_empty_summary_report():
    summary = parse_summary_report("", REPORT_DAY)
    assert not summary.has_data
    assert summary.diagnostics == ["Empty summary report"]


def test_subscriber_report_filters_by_event_date_and_classifies_rows():
    events = parse_subscriber_report(SUBSCRIBER, REPORT_DAY, target_currency="USD", convert=_identity)
    assert events.has_event_column
    assert events.revenue_extracted
    assert events.rows_processed == 3
    assert events.rows_skipped_wrong_date == 1
    assert events.renewals == 1
    assert events.first_payments == 1
    assert events.refunds == 1
    assert events.charged_revenue == Decimal("49.99")
    # 49.99 / 1.19 rounds to 42.01; the renewal and the refund cancel out.
    assert events.revenue == Decimal("42.01")
    assert events.proceeds == Decimal("35.00")
    assert events.monthly.charged == Decimal("0.00")
    assert events.yearly.charged == Decimal("49.99")


def test_subscriber_report_without_event_date_disables_revenue():
    tsv = _tsv(
        ("Product ID", "Event", "Customer Price", "Customer Currency", "Quantity"),
        ("com.example.monthly", "Renew", "4.99", "USD", "2"),
    )
    events = parse_subscriber_report(tsv, REPORT_DAY, target_currency="USD", convert=_identity)
    assert events.has_event_column
    assert not events.revenue_extracted
    assert events.renewals == 2
    assert events.charged_revenue == Decimal("0")


def test_subscriber_report_without_event_column():
    tsv = _tsv(("Product ID", "Customer Price"), ("com.example.monthly", "4.99"))
    events = parse_subscriber_report(tsv, REPORT_DAY, target_currency="USD", convert=_identity)
    assert not events.has_event_column
    assert events.renewals == 0


def test_subscriber_report_converts_row_currencies():
    tsv = _tsv(
        ("Event Date", "Product ID", "Event", "Customer Price", "Customer Currency", "Country", "Quantity"),
        ("2026-03-10", "com.example.monthly", "Renew", "100", "NOK", "NO", "1"),
    )
    seen = []

    def _convert(amount, from_currency, to_currency):
        seen.append((from_currency, to_currency))
        return round_money(amount / 10)

    events = parse_subscriber_report(tsv, REPORT_DAY, target_currency="usd", convert=_convert, fee_rate=0.3)
    assert ("NOK", "USD") in seen
    assert events.charged_revenue == Decimal("10.00")
    assert events.revenue == Decimal("8.00")
    assert events.proceeds == Decimal("7.00")


def test_subscription_event_report_counts():
    tsv = _tsv(
        ("Event Date", "Event", "Quantity"),
        ("2026-03-10", "Subscribe", "3"),
        ("2026-03-10", "Cancel", "2"),
        ("2026-03-10", "Renew", "4"),
        ("2026-03-11", "Renew", "9"),
    )
    counts = parse_subscription_event_report(tsv, REPORT_DAY)
    assert counts.has_data
    assert counts.first_payments == 3
    assert counts.cancellations == 2
    assert counts.renewals == 4


def test_column_helpers():
    assert parse_decimal('"1,234.50"') == Decimal("1234.50")
    assert parse_decimal("n/a") == Decimal("0")
    assert parse_report_date("03/10/2026") == REPORT_DAY
    assert parse_report_date("March 10, 2026") == REPORT_DAY
    assert parse_report_date("2026-03-10") == REPORT_DAY
    assert parse_report_date("garbage") is None
    assert plan_interval_for("com.example.annual") == "year"
    assert plan_interval_for("", "1 Month") == "month"
