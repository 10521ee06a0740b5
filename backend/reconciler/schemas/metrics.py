from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class SnapshotRead(BaseModel):
    date: date
    platform: str
    active_subscribers: int
    trial_subscribers: int
    paid_subscribers: int
    monthly_subscribers: int
    yearly_subscribers: int
    first_payments: int
    renewals: int
    cancellations: int
    churn: int
    refunds: int
    grace_events: int
    paybacks: int
    mrr: float
    charged_revenue: float
    revenue: float
    proceeds: float
    monthly_plan_charged_revenue: float
    monthly_plan_revenue: float
    monthly_plan_proceeds: float
    yearly_plan_charged_revenue: float
    yearly_plan_revenue: float
    yearly_plan_proceeds: float

    class Config:
        from_attributes = True


class ExchangeRateCreate(BaseModel):
    from_currency: str = Field(min_length=3, max_length=3)
    to_currency: str = Field(min_length=3, max_length=3)
    rate: float = Field(gt=0)
    year_month: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}$")

    @field_validator("from_currency", "to_currency")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


class ExchangeRateRead(BaseModel):
    id: int
    from_currency: str
    to_currency: str
    rate: float
    year_month: Optional[str] = None
    recorded_at: datetime

    class Config:
        from_attributes = True
