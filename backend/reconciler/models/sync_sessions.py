from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from reconciler.core.db import Base
from reconciler.core.time import utcnow


class SyncSession(Base):
    __tablename__ = "sync_sessions"
    __table_args__ = (Index("ix_sync_sessions_app_status", "app_id", "status"),)

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    # active -> completed | cancelled
    status = Column(String, nullable=False, default="active")
    started_at = Column(DateTime, nullable=False, default=utcnow)
    finished_at = Column(DateTime, nullable=True)
