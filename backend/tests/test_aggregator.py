import os
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("INTEGRATION_ENCRYPTION_KEY", "reconciler-test-key-0123456789ab")
os.environ["SKIP_MIGRATIONS"] = "1"

from reconciler.core.db import Base  # noqa: E402
from reconciler.core.platforms import STRIPE, UNIFIED  # noqa: E402
from reconciler.core.time import day_bounds_ms  # noqa: E402
from reconciler.crud.exchange_rates import record_rate  # noqa: E402
from reconciler.crud.revenue_events import store_revenue_events  # noqa: E402
from reconciler.crud.snapshots import get_snapshot  # noqa: E402
from reconciler.crud.subscriptions import upsert_subscriptions  # noqa: E402
from reconciler.jobs.aggregate_metrics import run_aggregate_metrics  # noqa: E402
from reconciler.metrics.aggregator import compute_day_values, monthly_price  # noqa: E402
from reconciler.reports.types import RevenueEventRecord, SubscriptionRecord  # noqa: E402
from tests.factories import make_app  # noqa: E402

DAY = date(2026, 1, 15)
DAY_START, DAY_END = day_bounds_ms(DAY)
JAN_1_MS = 1767225600000


def _setup_db(db_url: str):
    engine = create_engine(
        db_url,
        connect_args={"check_same_thread": False},
        future=True,
    )
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    return SessionLocal


def _sub(external_id, *, amount=999, interval="month", currency="USD", **extra):
    return SubscriptionRecord(
        external_id=external_id,
        status=extra.pop("status", "active"),
        start_date=extra.pop("start_date", JAN_1_MS),
        price_amount=amount,
        price_interval=interval,
        price_currency=currency,
        **extra,
    )


def test_monthly_price_normalization():
    assert monthly_price(Decimal("119.88"), "year") == Decimal("9.99")
    assert monthly_price(Decimal("10"), "month", 2) == Decimal("5")
    assert monthly_price(Decimal("1"), "week") == Decimal("4.33")
    assert monthly_price(Decimal("1"), "day") == Decimal("30")
    assert monthly_price(Decimal("7"), None) == Decimal("7")


def test_single_monthly_subscription_mrr_in_major_units():
    SessionLocal = _setup_db(f"sqlite:///./aggregate_mrr_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        upsert_subscriptions(db, app.id, STRIPE, [_sub("sub_1")])
        values = compute_day_values(db, app.id, STRIPE, DAY, currency="USD")
        assert values["active_subscribers"] == 1
        assert values["paid_subscribers"] == 1
        assert values["monthly_subscribers"] == 1
        assert values["mrr"] == Decimal("9.99")


def test_day_values_cover_stocks_flows_and_revenue():
    SessionLocal = _setup_db(f"sqlite:///./aggregate_day_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        upsert_subscriptions(
            db,
            app.id,
            STRIPE,
            [
                _sub("sub_month"),
                _sub("sub_year", amount=11988, interval="year"),
                _sub("sub_trial", trial_end=DAY_END + 1, is_trial=True),
                _sub("sub_gone", status="canceled", end_date=DAY_START),
                _sub("sub_future", start_date=DAY_END + 1),
            ],
        )
        store_revenue_events(
            db,
            app.id,
            STRIPE,
            [
                RevenueEventRecord(
                    subscription_external_id="sub_month",
                    event_type="first_payment",
                    amount=Decimal("9.99"),
                    amount_excluding_tax=Decimal("9.99"),
                    amount_proceeds=Decimal("9.40"),
                    currency="USD",
                    timestamp=DAY_START + 3600 * 1000,
                ),
                RevenueEventRecord(
                    subscription_external_id="sub_month",
                    event_type="refund",
                    amount=Decimal("4.00"),
                    currency="USD",
                    timestamp=DAY_START + 7200 * 1000,
                ),
            ],
        )

        values = compute_day_values(db, app.id, STRIPE, DAY, currency="USD")
        assert values["active_subscribers"] == 3
        assert values["trial_subscribers"] == 1
        assert values["paid_subscribers"] == 2
        assert values["monthly_subscribers"] == 1
        assert values["yearly_subscribers"] == 1
        assert values["mrr"] == Decimal("19.98")
        assert values["cancellations"] == values["churn"] == 1
        assert values["first_payments"] == 1
        assert values["refunds"] == 1
        assert values["charged_revenue"] == Decimal("5.99")
        assert values["revenue"] == Decimal("5.99")
        # 9.40 proceeds minus the refund at the assumed 15% fee (3.40).
        assert values["proceeds"] == Decimal("6.00")
        assert values["monthly_plan_charged_revenue"] == Decimal("5.99")
        assert values["yearly_plan_charged_revenue"] == Decimal("0")


def test_foreign_currency_prices_convert_with_month_rate():
    SessionLocal = _setup_db(f"sqlite:///./aggregate_fx_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db, currency="NOK")
        record_rate(db, "USD", "NOK", 10.0, year_month="2026-01")
        record_rate(db, "USD", "NOK", 12.0)
        upsert_subscriptions(db, app.id, STRIPE, [_sub("sub_1")])
        values = compute_day_values(db, app.id, STRIPE, DAY, currency="NOK")
        assert values["mrr"] == Decimal("99.90")


def test_run_aggregate_metrics_writes_platform_and_unified():
    SessionLocal = _setup_db(f"sqlite:///./aggregate_job_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        upsert_subscriptions(db, app.id, STRIPE, [_sub("sub_1")])
        written = run_aggregate_metrics(db, app.id, end_date=DAY, lookback_days=3)
        assert written == 3
        assert get_snapshot(db, app.id, STRIPE, DAY).mrr == 9.99
        assert get_snapshot(db, app.id, UNIFIED, DAY).mrr == 9.99
