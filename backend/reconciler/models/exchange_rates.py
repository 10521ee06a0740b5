from sqlalchemy import Column, DateTime, Float, Index, Integer, String

from reconciler.core.db import Base
from reconciler.core.time import utcnow


class ExchangeRate(Base):
    __tablename__ = "exchange_rates"
    __table_args__ = (
        Index("ix_exchange_rates_pair", "from_currency", "to_currency", "recorded_at"),
        Index("ix_exchange_rates_pair_month", "from_currency", "to_currency", "year_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    from_currency = Column(String(3), nullable=False)
    to_currency = Column(String(3), nullable=False)
    rate = Column(Float, nullable=False)
    recorded_at = Column(DateTime, nullable=False, default=utcnow)
    # "YYYY-MM" tag for month-accurate historical conversion.
    year_month = Column(String(7), nullable=True)
