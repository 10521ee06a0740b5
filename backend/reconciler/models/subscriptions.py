from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from reconciler.core.db import Base
from reconciler.models.mixins import TimestampMixin


EPOCH_MS = BigInteger().with_variant(Integer, "sqlite")


class Subscription(TimestampMixin, Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("app_id", "platform", "external_id", name="uq_subscriptions_app_platform_external"),
        Index("ix_subscriptions_app_platform", "app_id", "platform"),
    )

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String, nullable=False)
    external_id = Column(String, nullable=False)
    customer_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active", index=True)
    product_id = Column(String, nullable=True)
    start_date = Column(EPOCH_MS, nullable=False)
    end_date = Column(EPOCH_MS, nullable=True)
    is_trial = Column(Boolean, nullable=False, default=False)
    will_cancel = Column(Boolean, nullable=False, default=False)
    is_in_grace = Column(Boolean, nullable=False, default=False)
    trial_end = Column(EPOCH_MS, nullable=True)
    price_amount = Column(Integer, nullable=True)
    price_interval = Column(String, nullable=True)
    price_interval_count = Column(Integer, nullable=False, default=1)
    price_currency = Column(String(3), nullable=True)
    raw_data = Column(Text, nullable=True)
