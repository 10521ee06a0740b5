import os
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("INTEGRATION_ENCRYPTION_KEY", "reconciler-test-key-0123456789ab")
os.environ["SKIP_MIGRATIONS"] = "1"

from reconciler.core.config import settings  # noqa: E402
from reconciler.core.db import Base  # noqa: E402
from reconciler.core.platforms import APP_STORE, GOOGLE_PLAY, STRIPE, UNIFIED  # noqa: E402
from reconciler.core.time import utcnow, utctoday  # noqa: E402
from reconciler.crud.snapshots import get_snapshot  # noqa: E402
from reconciler.crud.sync_sessions import get_session, start_session  # noqa: E402
from reconciler.jobs.sync import sync_app  # noqa: E402
from reconciler.models.sync_logs import SyncLog  # noqa: E402
from tests.factories import (  # noqa: E402
    FakeAppStoreClient,
    FakeGooglePlayClient,
    FakeStripeClient,
    make_app,
    make_connection,
)

SUMMARY = "Product ID\tActive Standard Price Subscriptions\tSubscription Duration\ncom.example.monthly\t7\t1 Month"


def _setup_db(db_url: str):
    engine = create_engine(
        db_url,
        connect_args={"check_same_thread": False},
        future=True,
    )
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    return SessionLocal


@pytest.fixture(autouse=True)
def short_horizon(monkeypatch):
    monkeypatch.setattr(settings, "HISTORICAL_SYNC_DAYS", 5)
    monkeypatch.setattr(settings, "INCREMENTAL_SYNC_LOOKBACK_DAYS", 5)


def _subscription_report() -> bytes:
    day = (utctoday() - timedelta(days=1)).isoformat()
    return (
        "Date,Product ID,New Subscriptions,Cancelled Subscriptions,Active Subscriptions\n"
        f"{day},com.example.monthly,2,0,30\n"
    ).encode("utf-8")


def _stripe_payload():
    now = int(datetime.now(timezone.utc).timestamp())
    return {
        "subscriptions": [
            {
                "id": "sub_1",
                "status": "active",
                "customer": "cus_1",
                "created": now - 10 * 86400,
                "items": {
                    "data": [
                        {
                            "price": {
                                "product": "prod_1",
                                "unit_amount": 999,
                                "currency": "usd",
                                "recurring": {"interval": "month", "interval_count": 1},
                            }
                        }
                    ]
                },
            }
        ],
        "invoices": [],
        "refunds": [],
    }


class RecordingFactory:
    def __init__(self, clients):
        self.clients = clients
        self.calls = []

    def __call__(self, platform, credentials):
        self.calls.append(platform)
        return self.clients[platform]


def _mark_all_synced(db, *connections):
    for connection in connections:
        connection.last_sync_at = utcnow()
    db.commit()


def test_connections_run_in_platform_order():
    SessionLocal = _setup_db(f"sqlite:///./sync_order_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        connections = [
            make_connection(db, app=app, platform=APP_STORE),
            make_connection(db, app=app, platform=GOOGLE_PLAY),
            make_connection(db, app=app, platform=STRIPE),
        ]
        _mark_all_synced(db, *connections)
        factory = RecordingFactory(
            {
                STRIPE: FakeStripeClient(),
                GOOGLE_PLAY: FakeGooglePlayClient({"subscriptions/com.example.app.csv": _subscription_report()}),
                APP_STORE: FakeAppStoreClient(SUMMARY),
            }
        )
        summary = sync_app(db, app.id, client_factory=factory)
        assert factory.calls == [STRIPE, GOOGLE_PLAY, APP_STORE]
        assert summary.status == "completed"
        assert summary.platforms == {STRIPE: "ok", GOOGLE_PLAY: "ok", APP_STORE: "ok"}
        assert get_session(db, summary.session_id).status == "completed"


def test_failing_connection_does_not_stop_the_others():
    SessionLocal = _setup_db(f"sqlite:///./sync_isolation_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        stripe_conn = make_connection(db, app=app, platform=STRIPE)
        play_conn = make_connection(db, app=app, platform=GOOGLE_PLAY)
        factory = RecordingFactory(
            {
                STRIPE: FakeStripeClient(error=RuntimeError("stripe is down")),
                GOOGLE_PLAY: FakeGooglePlayClient({"subscriptions/com.example.app.csv": _subscription_report()}),
            }
        )
        summary = sync_app(db, app.id, client_factory=factory)

        assert summary.platforms == {STRIPE: "error", GOOGLE_PLAY: "ok"}
        errors = db.query(SyncLog).filter(SyncLog.app_id == app.id, SyncLog.level == "error").all()
        assert any("Error syncing Stripe: stripe is down" in log.message for log in errors)
        yesterday = utctoday() - timedelta(days=1)
        assert get_snapshot(db, app.id, GOOGLE_PLAY, yesterday).active_subscribers == 30
        assert get_snapshot(db, app.id, UNIFIED, yesterday).active_subscribers == 30
        db.refresh(stripe_conn)
        db.refresh(play_conn)
        assert stripe_conn.last_sync_at is None
        assert play_conn.last_sync_at is not None


def test_first_sync_is_historical_then_incremental():
    SessionLocal = _setup_db(f"sqlite:///./sync_modes_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        make_connection(db, app=app, platform=STRIPE)
        client = FakeStripeClient(_stripe_payload())
        factory = RecordingFactory({STRIPE: client})

        sync_app(db, app.id, client_factory=factory)
        sync_app(db, app.id, client_factory=factory)

        assert client.created_gte_calls[0] is None
        yesterday = utctoday() - timedelta(days=1)
        expected = int(datetime(yesterday.year, yesterday.month, yesterday.day, tzinfo=timezone.utc).timestamp())
        assert client.created_gte_calls[1] == expected
        assert get_snapshot(db, app.id, STRIPE, utctoday()).mrr == 9.99
        assert get_snapshot(db, app.id, UNIFIED, utctoday()).mrr == 9.99


def test_new_app_store_connection_starts_backfill():
    SessionLocal = _setup_db(f"sqlite:///./sync_backfill_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        make_connection(db, app=app, platform=APP_STORE)
        factory = RecordingFactory({APP_STORE: FakeAppStoreClient(SUMMARY)})
        summary = sync_app(db, app.id, client_factory=factory)
        assert summary.status == "backfilling"
        assert len(summary.backfill_progress_ids) == 1
        assert get_session(db, summary.session_id).status == "active"


def test_new_session_cancels_the_previous_one():
    SessionLocal = _setup_db(f"sqlite:///./sync_sessions_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        first = start_session(db, app.id)
        second = start_session(db, app.id)
        assert get_session(db, first.id).status == "cancelled"
        assert get_session(db, second.id).status == "active"


def test_cancelled_session_stops_before_next_connection():
    SessionLocal = _setup_db(f"sqlite:///./sync_cancel_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        make_connection(db, app=app, platform=STRIPE)
        session = start_session(db, app.id)
        start_session(db, app.id)
        factory = RecordingFactory({STRIPE: FakeStripeClient()})
        summary = sync_app(db, app.id, session_id=session.id, client_factory=factory)
        assert summary.status == "cancelled"
        assert factory.calls == []
