from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text

from reconciler.core.db import Base
from reconciler.core.time import utcnow
from reconciler.models.mixins import TimestampMixin


class SyncProgress(TimestampMixin, Base):
    __tablename__ = "sync_progress"

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String, nullable=False)
    connection_id = Column(
        Integer,
        ForeignKey("platform_connections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id = Column(Integer, ForeignKey("sync_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    # pending -> running -> completed | cancelled
    status = Column(String, nullable=False, default="pending")
    credentials_encrypted = Column(Text, nullable=False)
    start_date = Column(Date, nullable=False)
    total_days = Column(Integer, nullable=False)
    chunk_size_days = Column(Integer, nullable=False)
    total_chunks = Column(Integer, nullable=False)
    current_chunk = Column(Integer, nullable=False, default=0)
    processed_days = Column(Integer, nullable=False, default=0)
    # days that produced a snapshot; zero at the end means the backfill failed
    synced_days = Column(Integer, nullable=False, default=0)
    last_processed_date = Column(Date, nullable=True)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    error = Column(Text, nullable=True)
