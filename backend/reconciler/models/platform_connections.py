from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from reconciler.core.db import Base
from reconciler.models.mixins import TimestampMixin


class PlatformConnection(TimestampMixin, Base):
    __tablename__ = "platform_connections"
    __table_args__ = (Index("ix_platform_connections_app_platform", "app_id", "platform"),)

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String, nullable=False)
    credentials_encrypted = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(DateTime, nullable=True)

    app = relationship("App", back_populates="connections", lazy="selectin")
