import os
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("INTEGRATION_ENCRYPTION_KEY", "reconciler-test-key-0123456789ab")
os.environ["SKIP_MIGRATIONS"] = "1"

from reconciler.core.db import Base  # noqa: E402
from reconciler.core.platforms import STRIPE  # noqa: E402
from reconciler.crud.revenue_events import count_events, store_revenue_events  # noqa: E402
from reconciler.crud.subscriptions import list_subscriptions, upsert_subscriptions  # noqa: E402
from reconciler.models.revenue_events import RevenueEvent  # noqa: E402
from reconciler.reports.types import RevenueEventRecord, SubscriptionRecord  # noqa: E402
from tests.factories import make_app  # noqa: E402

JAN_15_MS = 1768435200000


def _setup_db(db_url: str):
    engine = create_engine(
        db_url,
        connect_args={"check_same_thread": False},
        future=True,
    )
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    return SessionLocal


def _seed_subscription(db, app_id: int, external_id: str = "sub_1"):
    upsert_subscriptions(
        db,
        app_id,
        STRIPE,
        [SubscriptionRecord(external_id=external_id, status="active", start_date=JAN_15_MS)],
    )


def _event(proceeds=None, external_id="sub_1", amount="9.99"):
    return RevenueEventRecord(
        subscription_external_id=external_id,
        event_type="renewal",
        amount=Decimal(amount),
        currency="usd",
        timestamp=JAN_15_MS + 1000,
        amount_proceeds=proceeds,
    )


def test_second_ingest_of_same_events_stores_nothing():
    SessionLocal = _setup_db(f"sqlite:///./revenue_dedup_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        _seed_subscription(db, app.id)
        first = store_revenue_events(db, app.id, STRIPE, [_event()])
        second = store_revenue_events(db, app.id, STRIPE, [_event()])
        assert first.stored == 1
        assert second.stored == 0
        assert second.skipped_duplicate == 1
        assert count_events(db, app.id, STRIPE) == 1


def test_duplicate_fills_missing_proceeds():
    SessionLocal = _setup_db(f"sqlite:///./revenue_fill_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        _seed_subscription(db, app.id)
        store_revenue_events(db, app.id, STRIPE, [_event()])
        result = store_revenue_events(db, app.id, STRIPE, [_event(proceeds=Decimal("8.49"))])
        assert result.proceeds_filled == 1
        row = db.query(RevenueEvent).one()
        assert row.amount_proceeds == 8.49
        assert row.currency == "USD"

        again = store_revenue_events(db, app.id, STRIPE, [_event(proceeds=Decimal("1.00"))])
        assert again.proceeds_filled == 0
        db.refresh(row)
        assert row.amount_proceeds == 8.49


def test_duplicates_within_one_batch_and_orphans():
    SessionLocal = _setup_db(f"sqlite:///./revenue_batch_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        _seed_subscription(db, app.id)
        result = store_revenue_events(
            db,
            app.id,
            STRIPE,
            [_event(), _event(), _event(external_id="sub_unknown"), _event(amount="4.99")],
        )
        assert result.to_dict() == {
            "stored": 2,
            "skipped_duplicate": 1,
            "skipped_orphan": 1,
            "proceeds_filled": 0,
        }


def test_subscription_upsert_refreshes_known_rows():
    SessionLocal = _setup_db(f"sqlite:///./subscription_upsert_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        _seed_subscription(db, app.id)
        outcome = upsert_subscriptions(
            db,
            app.id,
            STRIPE,
            [
                SubscriptionRecord(
                    external_id="sub_1",
                    status="canceled",
                    start_date=JAN_15_MS,
                    end_date=JAN_15_MS + 5000,
                ),
                SubscriptionRecord(external_id="sub_2", status="active", start_date=JAN_15_MS),
            ],
        )
        assert outcome == {"created": 1, "updated": 1}
        rows = {row.external_id: row for row in list_subscriptions(db, app.id, STRIPE)}
        assert rows["sub_1"].status == "canceled"
        assert rows["sub_1"].end_date == JAN_15_MS + 5000
