from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from reconciler.core.db import Base
from reconciler.core.time import utcnow


class SyncLog(Base):
    __tablename__ = "sync_logs"
    __table_args__ = (Index("ix_sync_logs_app_timestamp", "app_id", "timestamp"),)

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    level = Column(String, nullable=False, default="info")
    platform = Column(String, nullable=True)
    message = Column(Text, nullable=False)
