from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

import requests
from sqlalchemy.orm import Session

from reconciler.core.config import settings
from reconciler.core.currency import CurrencyConverter
from reconciler.core.errors import ParseFailure, ReportUnavailable
from reconciler.core.metrics import record_parse_failure, record_sync_day
from reconciler.core.platforms import APP_STORE
from reconciler.core.time import utctoday
from reconciler.crud.app_store_reports import save_report
from reconciler.crud.snapshots import (
    carry_forward_snapshot,
    get_snapshot,
    trailing_snapshots,
    upsert_snapshot,
)
from reconciler.crud.sync_logs import append_log
from reconciler.metrics.app_store import build_snapshot_values
from reconciler.reports.app_store import (
    REPORT_SUBSCRIBER,
    REPORT_SUBSCRIPTION_EVENT,
    REPORT_SUMMARY,
    parse_subscriber_report,
    parse_subscription_event_report,
    parse_summary_report,
    subscriber_converter,
)
from reconciler.reports.types import ZERO

logger = logging.getLogger(__name__)

OUTCOME_SYNCED = "synced"
OUTCOME_SKIPPED = "skipped"
OUTCOME_ERROR = "error"


@dataclass
class DayOutcome:
    day: date
    status: str
    renewals: int = 0
    revenue: Decimal = ZERO
    message: str | None = None


@dataclass
class DayTotals:
    synced: int = 0
    skipped: int = 0
    errors: int = 0
    renewals: int = 0
    revenue: Decimal = ZERO

    def add(self, outcome: DayOutcome) -> None:
        if outcome.status == OUTCOME_SYNCED:
            self.synced += 1
            self.renewals += outcome.renewals
            self.revenue += outcome.revenue
        elif outcome.status == OUTCOME_SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1


def _archive(db: Session, app_id: int, vendor_number: str, report: tuple[str, str, str], day: date, content: str):
    report_type, report_sub_type, _version = report
    save_report(
        db,
        app_id,
        report_type=report_type,
        report_sub_type=report_sub_type,
        vendor_number=vendor_number,
        report_date=day,
        content=content,
    )


def _optional_report(client, report: tuple[str, str, str], day: date) -> str | None:
    try:
        return client.download(report, day)
    except ReportUnavailable as exc:
        logger.info(
            "optional app store report unavailable",
            extra={"platform": APP_STORE, "report_kind": report[0], "report_date": day.isoformat(), "error": str(exc)},
        )
        return None


def sync_app_store_day(
    db: Session,
    app_id: int,
    client,
    day: date,
    *,
    vendor_number: str,
    currency: str,
    converter: CurrencyConverter,
) -> DayOutcome:
    """Download, archive, parse and store the app store figures for one day.

    Raises ``ReportUnavailable`` when the summary report is missing and
    ``ParseFailure`` when it carries no recognizable data. The subscriber and
    subscription-event reports are optional.
    """
    summary_tsv = client.download(REPORT_SUMMARY, day)

    events = None
    subscriber_tsv = _optional_report(client, REPORT_SUBSCRIBER, day)
    if subscriber_tsv is not None:
        _archive(db, app_id, vendor_number, REPORT_SUBSCRIBER, day, subscriber_tsv)
        events = parse_subscriber_report(
            subscriber_tsv,
            day,
            target_currency=currency,
            convert=subscriber_converter(converter),
        )

    event_counts = None
    event_tsv = _optional_report(client, REPORT_SUBSCRIPTION_EVENT, day)
    if event_tsv is not None:
        _archive(db, app_id, vendor_number, REPORT_SUBSCRIPTION_EVENT, day, event_tsv)
        event_counts = parse_subscription_event_report(event_tsv, day)

    _archive(db, app_id, vendor_number, REPORT_SUMMARY, day, summary_tsv)
    summary = parse_summary_report(summary_tsv, day)
    if not summary.has_data:
        record_parse_failure(APP_STORE, "summary")
        raise ParseFailure(
            f"Summary report for {day.isoformat()} has no recognizable columns",
            report_kind="summary",
        )

    # Paid deltas are day over day only; a gap leaves the flows unset.
    values = build_snapshot_values(
        summary,
        events,
        event_counts,
        previous=get_snapshot(db, app_id, APP_STORE, day - timedelta(days=1)),
        history=trailing_snapshots(db, app_id, APP_STORE, day),
    )
    upsert_snapshot(db, app_id, APP_STORE, day, values)
    return DayOutcome(day=day, status=OUTCOME_SYNCED, renewals=int(values["renewals"]), revenue=values.get("revenue", ZERO))


def process_day(
    db: Session,
    app_id: int,
    client,
    day: date,
    *,
    vendor_number: str,
    currency: str,
    converter: CurrencyConverter,
    today: date | None = None,
) -> DayOutcome:
    """Run one day and turn the expected failure modes into an outcome.

    Missing reports within the publication delay and "no sales" days are
    skips; other report problems are logged as errors. Conversion and
    authentication errors propagate.
    """
    today = today or utctoday()
    try:
        outcome = sync_app_store_day(
            db,
            app_id,
            client,
            day,
            vendor_number=vendor_number,
            currency=currency,
            converter=converter,
        )
    except ReportUnavailable as exc:
        if exc.is_no_sales:
            carry_forward_snapshot(db, app_id, APP_STORE, day)
            outcome = DayOutcome(day=day, status=OUTCOME_SKIPPED, message="no sales")
        elif exc.is_not_found and (today - day).days <= settings.REPORT_DELAY_GRACE_DAYS:
            outcome = DayOutcome(day=day, status=OUTCOME_SKIPPED, message="not yet published")
        else:
            append_log(db, app_id, f"App Store: {day.isoformat()} - {exc}", level="error", platform=APP_STORE)
            outcome = DayOutcome(day=day, status=OUTCOME_ERROR, message=str(exc))
    except ParseFailure as exc:
        append_log(db, app_id, f"App Store: {exc}", level="error", platform=APP_STORE)
        outcome = DayOutcome(day=day, status=OUTCOME_ERROR, message=str(exc))
    except requests.RequestException as exc:
        append_log(db, app_id, f"App Store: {day.isoformat()} - {exc}", level="error", platform=APP_STORE)
        outcome = DayOutcome(day=day, status=OUTCOME_ERROR, message=str(exc))
    record_sync_day(APP_STORE, outcome.status)
    return outcome


def sync_recent_days(
    db: Session,
    app_id: int,
    client,
    *,
    vendor_number: str,
    currency: str,
    days: int | None = None,
    today: date | None = None,
) -> DayTotals:
    """Incremental pass over the last few days, oldest first."""
    today = today or utctoday()
    days = days or settings.APP_STORE_INCREMENTAL_DAYS
    converter = CurrencyConverter(db)
    totals = DayTotals()
    for offset in range(days, 0, -1):
        totals.add(
            process_day(
                db,
                app_id,
                client,
                today - timedelta(days=offset),
                vendor_number=vendor_number,
                currency=currency,
                converter=converter,
                today=today,
            )
        )
    append_log(
        db,
        app_id,
        f"App Store: Incremental sync complete - {totals.synced} days, {totals.renewals} renewals, "
        f"{totals.revenue:.2f} revenue",
        level="success" if totals.synced else "error",
        platform=APP_STORE,
    )
    return totals
