from sqlalchemy import Column, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from reconciler.core.db import Base
from reconciler.models.mixins import TimestampMixin
from reconciler.models.subscriptions import EPOCH_MS


class RevenueEvent(TimestampMixin, Base):
    __tablename__ = "revenue_events"
    __table_args__ = (
        Index("ix_revenue_events_app_platform", "app_id", "platform"),
        Index("ix_revenue_events_dedup", "subscription_id", "timestamp", "amount"),
        Index("ix_revenue_events_app_timestamp", "app_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String, nullable=False)
    subscription_id = Column(
        Integer,
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    amount_excluding_tax = Column(Float, nullable=True)
    amount_proceeds = Column(Float, nullable=True)
    currency = Column(String(3), nullable=False)
    country = Column(String(2), nullable=True)
    timestamp = Column(EPOCH_MS, nullable=False)
    external_id = Column(String, nullable=True, index=True)
    raw_data = Column(Text, nullable=True)

    subscription = relationship("Subscription", lazy="joined")
