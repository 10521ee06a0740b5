"""
Parsers for the three daily App Store Connect sales reports.

* SUBSCRIPTION / SUMMARY: a snapshot of subscriber stock per product. It may
  carry an event column on some report versions, but never transactions, so
  revenue is never read from it (customer price there is the tier price).
* SUBSCRIBER / DETAILED: one row per transaction, possibly spanning several
  days. Rows are filtered to the report date through the event date column;
  without that column flows are still counted but revenue stays disabled.
* SUBSCRIPTION_EVENT / SUMMARY: event totals (subscribe, cancel, renew...).

All three are tab-separated with a header row whose labels drift between
report versions, see ``reconciler.reports.columns``.
"""

from __future__ import annotations

import csv
import logging
from datetime import date
from decimal import Decimal
from typing import Callable

from reconciler.core.config import settings
from reconciler.core.currency import normalize_currency, round_money, to_decimal
from reconciler.core.platforms import APP_STORE
from reconciler.core.vat import revenue_excluding_vat
from reconciler.reports.classifier import (
    CANCELLATION,
    FIRST_PAYMENT,
    GRACE,
    REFUND,
    RENEWAL,
    classify_event,
)
from reconciler.reports.columns import (
    APP_STORE_EVENT_COLUMNS,
    APP_STORE_SUBSCRIBER_COLUMNS,
    APP_STORE_SUMMARY_COLUMNS,
    cell,
    locate_columns,
    normalize_headers,
    parse_count,
    parse_decimal,
    parse_report_date,
    plan_interval_for,
)
from reconciler.reports.types import EventCounts, EventData, SummaryReport

logger = logging.getLogger(__name__)

REPORT_SUMMARY = ("SUBSCRIPTION", "SUMMARY", "1_4")
REPORT_SUBSCRIBER = ("SUBSCRIBER", "DETAILED", "1_3")
REPORT_SUBSCRIPTION_EVENT = ("SUBSCRIPTION_EVENT", "SUMMARY", "1_3")

# (amount, from_currency, to_currency) -> amount rounded in to_currency
Converter = Callable[[Decimal, str, str], Decimal]


def _rows(tsv: str) -> tuple[list[str], list[list[str]]]:
    text = (tsv or "").strip()
    if not text:
        return [], []
    reader = csv.reader(text.splitlines(), delimiter="\t", quoting=csv.QUOTE_NONE)
    rows = [row for row in reader]
    if not rows:
        return [], []
    return normalize_headers(rows[0]), [row for row in rows[1:] if any(c.strip() for c in row)]


def _diagnose(target: list[str], message: str, report_date: date | None, kind: str) -> None:
    target.append(message)
    logger.warning(
        message,
        extra={"platform": APP_STORE, "report_kind": kind, "report_date": str(report_date or "")},
    )


def _count_event(counts, classification, quantity: int) -> None:
    if classification.event_type == FIRST_PAYMENT:
        counts.first_payments += quantity
    elif classification.event_type == RENEWAL:
        counts.renewals += quantity
    elif classification.event_type == REFUND:
        counts.refunds += quantity
    elif classification.event_type == CANCELLATION:
        counts.cancellations += quantity
    elif classification.event_type == GRACE:
        counts.grace_events += quantity


def parse_summary_report(tsv: str, report_date: date | None = None) -> SummaryReport:
    result = SummaryReport()
    headers, rows = _rows(tsv)
    if not rows:
        _diagnose(result.diagnostics, "Empty summary report", report_date, "summary")
        return result

    columns = locate_columns(headers, APP_STORE_SUMMARY_COLUMNS)
    if columns["active"] is None and columns["event"] is None:
        _diagnose(
            result.diagnostics,
            "Summary report has no subscriber or event columns",
            report_date,
            "summary",
        )
        return result

    result.has_data = True
    for row in rows:
        product_id = cell(row, columns["product_id"]).lower()
        if product_id:
            result.product_ids.add(product_id)

        row_active = parse_count(cell(row, columns["active"]))
        result.active += row_active

        if row_active > 0:
            interval = plan_interval_for(product_id, cell(row, columns["duration"]))
            if interval == "month":
                result.monthly += row_active
            elif interval == "year":
                result.yearly += row_active
            elif product_id:
                result.unmatched_product_ids.add(product_id)

        result.trial += parse_count(cell(row, columns["trial"]))
        result.grace_events += parse_count(cell(row, columns["grace_period"]))
        result.grace_events += parse_count(cell(row, columns["billing_retry"]))

        if columns["event"] is not None and columns["units"] is not None:
            label = cell(row, columns["event"]).lower()
            units = parse_count(cell(row, columns["units"]))
            if label:
                result.event_types[label] += units
                _count_event(result, classify_event(label), units)

    # The paid column is the same standard-price column as active on current
    # report versions, so paid is derived instead of read.
    result.paid = max(0, result.active - result.trial)
    if result.unmatched_product_ids:
        logger.info(
            "Unmatched product ids in summary report",
            extra={
                "platform": APP_STORE,
                "report_date": str(report_date or ""),
                "product_ids": sorted(result.unmatched_product_ids),
            },
        )
    return result


def parse_subscriber_report(
    tsv: str,
    report_date: date,
    *,
    target_currency: str,
    convert: Converter,
    fee_rate: float | None = None,
) -> EventData:
    """Extract flows and revenue for ``report_date`` from a subscriber report.

    Money is converted into ``target_currency`` row by row, reading each
    row's own currency columns. Cancellation and refund rows subtract.
    """
    result = EventData()
    headers, rows = _rows(tsv)
    if not rows:
        _diagnose(result.diagnostics, "Empty subscriber report", report_date, "subscriber")
        return result

    columns = locate_columns(headers, APP_STORE_SUBSCRIBER_COLUMNS)
    if columns["event"] is None:
        # No label column at all: flows come from day-over-day deltas instead.
        _diagnose(
            result.diagnostics,
            "Subscriber report has no Event or Proceeds Reason column",
            report_date,
            "subscriber",
        )
        return result

    result.has_event_column = True
    result.revenue_extracted = columns["event_date"] is not None
    if not result.revenue_extracted:
        _diagnose(
            result.diagnostics,
            "Subscriber report has no event date column; revenue extraction disabled",
            report_date,
            "subscriber",
        )

    fee = Decimal(str(settings.ASSUMED_PLATFORM_FEE_RATE if fee_rate is None else fee_rate))
    target = normalize_currency(target_currency)

    for row in rows:
        if columns["event_date"] is not None:
            if parse_report_date(cell(row, columns["event_date"])) != report_date:
                result.rows_skipped_wrong_date += 1
                continue
        result.rows_processed += 1

        label = cell(row, columns["event"])
        quantity = parse_count(cell(row, columns["quantity"]), default=1)
        price = parse_decimal(cell(row, columns["customer_price"]))
        classification = classify_event(label, price)
        if label:
            result.event_types[label] += quantity
        _count_event(result, classification, quantity)

        if not result.revenue_extracted or not classification.is_revenue:
            continue

        gross_currency = normalize_currency(cell(row, columns["customer_currency"]))
        if columns["proceeds"] is not None:
            net_raw = parse_decimal(cell(row, columns["proceeds"]))
            net_currency = normalize_currency(cell(row, columns["proceeds_currency"]))
        else:
            net_raw = price * (Decimal("1") - fee)
            net_currency = gross_currency
        result.currencies[gross_currency] += 1

        charged = convert(price, gross_currency, target)
        proceeds = convert(net_raw, net_currency, target)
        revenue = round_money(revenue_excluding_vat(charged, cell(row, columns["country"])))

        sign = classification.revenue_sign
        result.charged_revenue += charged * sign
        result.revenue += revenue * sign
        result.proceeds += proceeds * sign

        interval = plan_interval_for(
            cell(row, columns["product_id"]).lower(),
            cell(row, columns["duration"]),
        )
        if interval == "month":
            result.monthly.add(charged, revenue, proceeds, sign)
        elif interval == "year":
            result.yearly.add(charged, revenue, proceeds, sign)

    logger.info(
        "Subscriber report parsed",
        extra={
            "platform": APP_STORE,
            "report_date": str(report_date),
            "rows_processed": result.rows_processed,
            "rows_skipped": result.rows_skipped_wrong_date,
            "renewals": result.renewals,
            "first_payments": result.first_payments,
            "charged_revenue": str(result.charged_revenue),
        },
    )
    return result


def parse_subscription_event_report(tsv: str, report_date: date | None = None) -> EventCounts:
    result = EventCounts()
    headers, rows = _rows(tsv)
    if not rows:
        _diagnose(result.diagnostics, "Empty subscription event report", report_date, "subscription_event")
        return result

    columns = locate_columns(headers, APP_STORE_EVENT_COLUMNS)
    if columns["event"] is None:
        _diagnose(
            result.diagnostics,
            "Subscription event report has no event column",
            report_date,
            "subscription_event",
        )
        return result

    result.has_data = True
    for row in rows:
        if report_date is not None and columns["event_date"] is not None:
            if parse_report_date(cell(row, columns["event_date"])) != report_date:
                continue
        label = cell(row, columns["event"]).lower()
        if not label:
            continue
        quantity = parse_count(cell(row, columns["quantity"]), default=1)
        result.event_types[label] += quantity
        _count_event(result, classify_event(label), quantity)
    return result


def subscriber_converter(converter) -> Converter:
    """Adapt a ``CurrencyConverter`` to the row conversion callable."""

    def _convert(amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        return converter.convert(to_decimal(amount), from_currency, to_currency)

    return _convert
