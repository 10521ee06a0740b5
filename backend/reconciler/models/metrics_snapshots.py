from sqlalchemy import Column, Date, Float, ForeignKey, Index, Integer, String

from reconciler.core.db import Base
from reconciler.models.mixins import TimestampMixin


COUNT_FIELDS = (
    "active_subscribers",
    "trial_subscribers",
    "paid_subscribers",
    "monthly_subscribers",
    "yearly_subscribers",
    "first_payments",
    "renewals",
    "cancellations",
    "churn",
    "refunds",
    "grace_events",
    "paybacks",
)

MONEY_FIELDS = (
    "mrr",
    "charged_revenue",
    "revenue",
    "proceeds",
    "monthly_plan_charged_revenue",
    "monthly_plan_revenue",
    "monthly_plan_proceeds",
    "yearly_plan_charged_revenue",
    "yearly_plan_revenue",
    "yearly_plan_proceeds",
)

NUMERIC_FIELDS = COUNT_FIELDS + MONEY_FIELDS


class MetricsSnapshot(TimestampMixin, Base):
    __tablename__ = "metrics_snapshots"
    # Not unique on purpose: older rows may hold duplicates, which the store
    # heals on every write.
    __table_args__ = (
        Index("ix_metrics_snapshots_app_platform_date", "app_id", "platform", "date"),
        Index("ix_metrics_snapshots_app_date", "app_id", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String, nullable=False)
    date = Column(Date, nullable=False)

    active_subscribers = Column(Integer, nullable=False, default=0)
    trial_subscribers = Column(Integer, nullable=False, default=0)
    paid_subscribers = Column(Integer, nullable=False, default=0)
    monthly_subscribers = Column(Integer, nullable=False, default=0)
    yearly_subscribers = Column(Integer, nullable=False, default=0)

    first_payments = Column(Integer, nullable=False, default=0)
    renewals = Column(Integer, nullable=False, default=0)
    cancellations = Column(Integer, nullable=False, default=0)
    churn = Column(Integer, nullable=False, default=0)
    refunds = Column(Integer, nullable=False, default=0)
    grace_events = Column(Integer, nullable=False, default=0)
    paybacks = Column(Integer, nullable=False, default=0)

    mrr = Column(Float, nullable=False, default=0.0)
    charged_revenue = Column(Float, nullable=False, default=0.0)
    revenue = Column(Float, nullable=False, default=0.0)
    proceeds = Column(Float, nullable=False, default=0.0)
    monthly_plan_charged_revenue = Column(Float, nullable=False, default=0.0)
    monthly_plan_revenue = Column(Float, nullable=False, default=0.0)
    monthly_plan_proceeds = Column(Float, nullable=False, default=0.0)
    yearly_plan_charged_revenue = Column(Float, nullable=False, default=0.0)
    yearly_plan_revenue = Column(Float, nullable=False, default=0.0)
    yearly_plan_proceeds = Column(Float, nullable=False, default=0.0)
