"""
Parsers for Google Play Console exports found in the developer's GCS bucket.

Files are CSV in UTF-8 or UTF-16 (sometimes zipped) and come in three useful
kinds: financial (earnings and sales), subscription and statistics. Each file
becomes a ``ParsedReport`` of per-date tables; ``merge_reports`` folds many
files into one ``MarketplaceBatch`` where flows add up and stock counts take
the largest value seen for a date.
"""

from __future__ import annotations

import csv
import io
import logging
import zipfile
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable

from reconciler.core.config import settings
from reconciler.core.currency import normalize_currency
from reconciler.core.metrics import record_parse_failure
from reconciler.core.platforms import GOOGLE_PLAY
from reconciler.reports.columns import (
    GOOGLE_PLAY_FINANCIAL_COLUMNS,
    GOOGLE_PLAY_STATISTICS_COLUMNS,
    GOOGLE_PLAY_SUBSCRIPTION_COLUMNS,
    cell,
    locate_columns,
    normalize_headers,
    parse_count,
    parse_decimal,
    parse_report_date,
    plan_interval_for,
)
from reconciler.reports.types import (
    MarketplaceBatch,
    ParsedReport,
    ReportMetadata,
    RevenueData,
    SubscriptionMetrics,
)

logger = logging.getLogger(__name__)

KIND_FINANCIAL = "financial"
KIND_SUBSCRIPTION = "subscription"
KIND_STATISTICS = "statistics"
KIND_UNKNOWN = "unknown"
REPORT_KINDS = (KIND_FINANCIAL, KIND_SUBSCRIPTION, KIND_STATISTICS, KIND_UNKNOWN)

# Both families describe the same orders; earnings wins for a date it covers.
SOURCE_EARNINGS = "earnings"
SOURCE_SALES = "sales"

NULL_BYTE_THRESHOLD = 0.3
SNIFF_BYTES = 200

# Earnings rows tagged with these transaction types carry the buyer charge.
_CHARGE_TYPES = ("charge",)
_REFUND_MARKERS = ("refund",)
_FEE_MARKERS = ("fee",)
_TAX_MARKERS = ("tax",)

# (amount, from_currency) -> amount in the batch's target currency
Converter = Callable[[Decimal, str], Decimal]


def _identity(amount: Decimal, currency: str) -> Decimal:
    return amount


def decode_csv(raw: bytes) -> str:
    """Decode report bytes, detecting UTF-16 by BOM or null-byte density."""
    if raw[:2] == b"\xff\xfe":
        return raw[2:].decode("utf-16-le", errors="replace")
    if raw[:2] == b"\xfe\xff":
        return raw[2:].decode("utf-16-be", errors="replace")
    sample = raw[:SNIFF_BYTES]
    if sample and sample.count(0) / len(sample) > NULL_BYTE_THRESHOLD:
        return raw.decode("utf-16-le", errors="replace")
    return raw.decode("utf-8-sig", errors="replace")


def unpack(raw: bytes) -> bytes:
    """Return the first CSV member of a zip archive, or ``raw`` unchanged."""
    if not raw.startswith(b"PK"):
        return raw
    with zipfile.ZipFile(io.BytesIO(raw)) as archive:
        for name in archive.namelist():
            if name.lower().endswith(".csv"):
                return archive.read(name)
    return b""


def classify_report(file_name: str, header_line: str = "") -> str:
    name = (file_name or "").lower()
    if "earnings" in name or "sales" in name:
        return KIND_FINANCIAL
    if "subscription" in name:
        return KIND_SUBSCRIPTION
    if "stats" in name or "installs" in name or "statistics" in name:
        return KIND_STATISTICS

    header = (header_line or "").lower()
    if "charged amount" in header or "item price" in header or "merchant currency" in header:
        return KIND_FINANCIAL
    if "active subscriptions" in header or "new subscriptions" in header:
        return KIND_SUBSCRIPTION
    if "install" in header:
        return KIND_STATISTICS
    return KIND_UNKNOWN


def _read_rows(text: str) -> tuple[list[str], list[list[str]]]:
    reader = csv.reader(io.StringIO(text.strip()))
    rows = [row for row in reader if row and any(c.strip() for c in row)]
    if not rows:
        return [], []
    return normalize_headers(rows[0]), rows[1:]


def _in_range(day: date | None, start: date | None, end: date | None) -> bool:
    if day is None:
        return False
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def _diagnose(report: ParsedReport, message: str) -> ParsedReport:
    report.diagnostics.append(message)
    logger.warning(
        message,
        extra={"platform": GOOGLE_PLAY, "report_kind": report.kind, "file_name": report.file_name},
    )
    record_parse_failure(GOOGLE_PLAY, report.kind)
    return report


def parse_financial_report(
    text: str,
    file_name: str = "",
    *,
    convert: Converter | None = None,
    default_currency: str = "USD",
    start: date | None = None,
    end: date | None = None,
) -> ParsedReport:
    """Sum gross, net and proceeds per date from an earnings or sales file.

    Earnings files carry one row per money movement (charge, tax, Google fee,
    refunds) in the merchant currency: gross is the charges, net adds the
    (negative) tax rows and proceeds is the sum of everything. Sales files
    carry one row per order with item price and charged amount.
    """
    report = ParsedReport(kind=KIND_FINANCIAL, file_name=file_name)
    headers, rows = _read_rows(text)
    if not rows:
        return _diagnose(report, "Empty financial report")
    columns = locate_columns(headers, GOOGLE_PLAY_FINANCIAL_COLUMNS)
    if columns["date"] is None:
        return _diagnose(report, "Financial report has no date column")

    convert = convert or _identity
    fee = Decimal("1") - Decimal(str(settings.ASSUMED_PLATFORM_FEE_RATE))
    is_earnings = columns["charged_amount"] is None or (
        columns["item_price"] is None and columns["proceeds"] is not None
    )
    report.source = SOURCE_EARNINGS if is_earnings else SOURCE_SALES

    for row in rows:
        day = parse_report_date(cell(row, columns["date"]))
        if not _in_range(day, start, end):
            continue
        currency = normalize_currency(cell(row, columns["currency"]), default_currency)
        kind = cell(row, columns["transaction_type"]).lower()
        bucket = report.revenue_by_date.setdefault(day.isoformat(), RevenueData())

        if is_earnings:
            amount = convert(parse_decimal(cell(row, columns["proceeds"])), currency)
            bucket.proceeds += amount
            if any(marker in kind for marker in _FEE_MARKERS):
                continue
            if any(marker in kind for marker in _TAX_MARKERS):
                bucket.net += amount
                continue
            bucket.gross += amount
            bucket.net += amount
            if kind in _CHARGE_TYPES:
                bucket.transactions += 1
            continue

        charged = convert(parse_decimal(cell(row, columns["charged_amount"])), currency)
        if columns["item_price"] is not None:
            net = convert(parse_decimal(cell(row, columns["item_price"])), currency)
        else:
            net = charged - convert(parse_decimal(cell(row, columns["taxes"])), currency)
        sign = -1 if any(marker in kind for marker in _REFUND_MARKERS) else 1
        bucket.gross += charged * sign
        bucket.net += net * sign
        bucket.proceeds += net * fee * sign
        if sign > 0:
            bucket.transactions += 1

    return report


def _parse_subscription_rows(
    report: ParsedReport,
    text: str,
    table,
    *,
    start: date | None,
    end: date | None,
) -> ParsedReport:
    headers, rows = _read_rows(text)
    if not rows:
        return _diagnose(report, f"Empty {report.kind} report")
    columns = locate_columns(headers, table)
    if columns["date"] is None:
        return _diagnose(report, f"{report.kind.title()} report has no date column")
    if all(columns.get(name) is None for name in ("active", "new", "canceled")):
        return _diagnose(report, f"{report.kind.title()} report has no subscription columns")

    for row in rows:
        day = parse_report_date(cell(row, columns["date"]))
        if not _in_range(day, start, end):
            continue
        metrics = report.subscription_metrics_by_date.setdefault(day.isoformat(), SubscriptionMetrics())
        # Rows inside one file partition the day by product or country.
        active = parse_count(cell(row, columns.get("active")))
        trial = parse_count(cell(row, columns.get("trial")))
        metrics.active += active
        metrics.trial += trial
        metrics.paid += parse_count(cell(row, columns.get("paid")))
        metrics.new_subscriptions += parse_count(cell(row, columns.get("new")))
        metrics.canceled_subscriptions += parse_count(cell(row, columns.get("canceled")))
        metrics.renewals += parse_count(cell(row, columns.get("renewals")))
        if active > 0:
            interval = plan_interval_for(cell(row, columns.get("product_id")).lower())
            if interval == "month":
                metrics.monthly += active
            elif interval == "year":
                metrics.yearly += active
    return report


def parse_subscription_report(
    text: str,
    file_name: str = "",
    *,
    start: date | None = None,
    end: date | None = None,
) -> ParsedReport:
    report = ParsedReport(kind=KIND_SUBSCRIPTION, file_name=file_name)
    return _parse_subscription_rows(report, text, GOOGLE_PLAY_SUBSCRIPTION_COLUMNS, start=start, end=end)


def parse_statistics_report(
    text: str,
    file_name: str = "",
    *,
    start: date | None = None,
    end: date | None = None,
) -> ParsedReport:
    report = ParsedReport(kind=KIND_STATISTICS, file_name=file_name)
    return _parse_subscription_rows(report, text, GOOGLE_PLAY_STATISTICS_COLUMNS, start=start, end=end)


def parse(
    raw: bytes,
    metadata: ReportMetadata,
    *,
    convert: Converter | None = None,
    start: date | None = None,
    end: date | None = None,
) -> ParsedReport:
    """Decode, classify and parse one bucket object.

    Never raises for malformed content: an unreadable file yields an empty
    report carrying a diagnostic.
    """
    try:
        text = decode_csv(unpack(raw))
    except zipfile.BadZipFile:
        return _diagnose(ParsedReport(kind=KIND_UNKNOWN, file_name=metadata.file_name), "Corrupt zip archive")

    first_line = text.strip().splitlines()[0] if text.strip() else ""
    kind = metadata.report_kind or classify_report(metadata.file_name, first_line)
    if kind == KIND_FINANCIAL:
        return parse_financial_report(
            text,
            metadata.file_name,
            convert=convert,
            default_currency=metadata.currency or "USD",
            start=start,
            end=end,
        )
    if kind == KIND_SUBSCRIPTION:
        return parse_subscription_report(text, metadata.file_name, start=start, end=end)
    if kind == KIND_STATISTICS:
        return parse_statistics_report(text, metadata.file_name, start=start, end=end)
    return _diagnose(ParsedReport(kind=KIND_UNKNOWN, file_name=metadata.file_name), "Unrecognized report")


def merge_reports(reports: Iterable[ParsedReport]) -> MarketplaceBatch:
    """Fold parsed files into one batch.

    Files of the same financial family add up per date. Earnings and sales
    files are never summed with each other: a date covered by any earnings
    file takes its revenue from earnings only, and sales fill the remaining
    dates.
    """
    batch = MarketplaceBatch()
    revenue_by_source: dict[str, dict[str, RevenueData]] = {SOURCE_EARNINGS: {}, SOURCE_SALES: {}}
    for report in reports:
        batch.diagnostics.extend(f"{report.file_name}: {message}" for message in report.diagnostics)
        if not report.dates:
            continue
        batch.report_kinds.add(report.kind)
        family = revenue_by_source[report.source or SOURCE_SALES]
        for day, revenue in report.revenue_by_date.items():
            family.setdefault(day, RevenueData()).merge(revenue)
        for day, metrics in report.subscription_metrics_by_date.items():
            batch.subscription_metrics_by_date.setdefault(day, SubscriptionMetrics()).merge(metrics)

    batch.revenue_by_date.update(revenue_by_source[SOURCE_SALES])
    batch.revenue_by_date.update(revenue_by_source[SOURCE_EARNINGS])
    return batch
