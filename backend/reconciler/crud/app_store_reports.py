from datetime import date

from sqlalchemy import desc
from sqlalchemy.orm import Session

from reconciler.models.app_store_reports import AppStoreReport


def save_report(
    db: Session,
    app_id: int,
    *,
    report_type: str,
    report_sub_type: str,
    vendor_number: str,
    report_date: date,
    content: str,
    frequency: str = "DAILY",
    bundle_id: str | None = None,
) -> AppStoreReport:
    report = AppStoreReport(
        app_id=app_id,
        report_type=report_type,
        report_sub_type=report_sub_type,
        frequency=frequency,
        vendor_number=vendor_number,
        report_date=report_date,
        bundle_id=bundle_id,
        content=content,
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    return report


def list_reports(
    db: Session,
    app_id: int,
    *,
    report_date: date | None = None,
    report_type: str | None = None,
) -> list[AppStoreReport]:
    query = db.query(AppStoreReport).filter(AppStoreReport.app_id == app_id)
    if report_date is not None:
        query = query.filter(AppStoreReport.report_date == report_date)
    if report_type:
        query = query.filter(AppStoreReport.report_type == report_type)
    return query.order_by(desc(AppStoreReport.report_date), desc(AppStoreReport.id)).all()
