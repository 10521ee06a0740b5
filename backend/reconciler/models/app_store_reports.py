from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Text

from reconciler.core.db import Base
from reconciler.core.time import utcnow


class AppStoreReport(Base):
    __tablename__ = "app_store_reports"
    __table_args__ = (
        Index("ix_app_store_reports_app_date", "app_id", "report_date"),
        Index("ix_app_store_reports_type", "report_type", "report_sub_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    report_type = Column(String, nullable=False)
    report_sub_type = Column(String, nullable=False)
    frequency = Column(String, nullable=False, default="DAILY")
    vendor_number = Column(String, nullable=False)
    report_date = Column(Date, nullable=False)
    bundle_id = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
