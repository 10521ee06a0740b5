import os
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("INTEGRATION_ENCRYPTION_KEY", "reconciler-test-key-0123456789ab")
os.environ["SKIP_MIGRATIONS"] = "1"

from reconciler.core.db import Base  # noqa: E402
from reconciler.core.platforms import APP_STORE, GOOGLE_PLAY, STRIPE, UNIFIED  # noqa: E402
from reconciler.crud.snapshots import (  # noqa: E402
    carry_forward_snapshot,
    get_previous_snapshot,
    get_snapshot,
    platform_snapshot_dates,
    rollup_unified,
    snapshot_values,
    trailing_snapshots,
    upsert_snapshot,
)
from reconciler.models.metrics_snapshots import MetricsSnapshot  # noqa: E402
from tests.factories import make_app  # noqa: E402

DAY = date(2026, 3, 10)


def _setup_db(db_url: str):
    engine = create_engine(
        db_url,
        connect_args={"check_same_thread": False},
        future=True,
    )
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    return SessionLocal


def _count(db, app_id, platform, day):
    return (
        db.query(MetricsSnapshot)
        .filter(
            MetricsSnapshot.app_id == app_id,
            MetricsSnapshot.platform == platform,
            MetricsSnapshot.date == day,
        )
        .count()
    )


def test_upsert_heals_existing_duplicates():
    SessionLocal = _setup_db(f"sqlite:///./snapshot_dupes_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        db.add_all(
            [
                MetricsSnapshot(app_id=app.id, platform=STRIPE, date=DAY, active_subscribers=1),
                MetricsSnapshot(app_id=app.id, platform=STRIPE, date=DAY, active_subscribers=2),
                MetricsSnapshot(app_id=app.id, platform=STRIPE, date=DAY, active_subscribers=3),
            ]
        )
        db.commit()

        snapshot = upsert_snapshot(db, app.id, STRIPE, DAY, {"active_subscribers": 7, "mrr": Decimal("9.995")})
        assert _count(db, app.id, STRIPE, DAY) == 1
        assert snapshot.active_subscribers == 7
        assert snapshot.mrr == 10.0
        # Fields left out of the write are reset.
        assert snapshot.renewals == 0


def test_upsert_overwrites_in_place():
    SessionLocal = _setup_db(f"sqlite:///./snapshot_overwrite_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        first = upsert_snapshot(db, app.id, STRIPE, DAY, {"renewals": 4, "revenue": 12.5})
        second = upsert_snapshot(db, app.id, STRIPE, DAY, {"renewals": 1})
        assert first.id == second.id
        assert second.renewals == 1
        assert second.revenue == 0.0
        assert _count(db, app.id, STRIPE, DAY) == 1


def test_upsert_rejects_unknown_platform():
    SessionLocal = _setup_db(f"sqlite:///./snapshot_platform_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        with pytest.raises(ValueError):
            upsert_snapshot(db, app.id, "amazon", DAY, {})


def test_unified_is_sum_of_platforms_and_idempotent():
    SessionLocal = _setup_db(f"sqlite:///./snapshot_unified_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        upsert_snapshot(db, app.id, STRIPE, DAY, {"active_subscribers": 10, "revenue": Decimal("10.10"), "mrr": 99.9})
        upsert_snapshot(db, app.id, GOOGLE_PLAY, DAY, {"active_subscribers": 5, "revenue": Decimal("0.20")})
        upsert_snapshot(db, app.id, APP_STORE, DAY, {"active_subscribers": 1, "revenue": Decimal("0.10")})
        # A leftover duplicate platform row must not be counted twice.
        db.add(MetricsSnapshot(app_id=app.id, platform=APP_STORE, date=DAY, active_subscribers=100))
        db.commit()

        rollup_unified(db, app.id, DAY)
        unified = rollup_unified(db, app.id, DAY)
        assert _count(db, app.id, UNIFIED, DAY) == 1
        assert unified.active_subscribers == 16
        assert unified.revenue == 10.4
        assert unified.mrr == 99.9


def test_previous_and_trailing_snapshots():
    SessionLocal = _setup_db(f"sqlite:///./snapshot_history_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        for offset in (1, 5, 30, 31):
            upsert_snapshot(db, app.id, APP_STORE, DAY - timedelta(days=offset), {"paid_subscribers": offset})
        upsert_snapshot(db, app.id, APP_STORE, DAY, {"paid_subscribers": 99})

        previous = get_previous_snapshot(db, app.id, APP_STORE, DAY)
        assert previous.paid_subscribers == 1
        history = trailing_snapshots(db, app.id, APP_STORE, DAY)
        assert sorted(s.paid_subscribers for s in history) == [1, 5, 30]
        assert platform_snapshot_dates(db, app.id, DAY - timedelta(days=5), DAY) == {
            DAY - timedelta(days=5),
            DAY - timedelta(days=1),
            DAY,
        }


def test_carry_forward_copies_stocks_only():
    SessionLocal = _setup_db(f"sqlite:///./snapshot_carry_{uuid4().hex}.db")
    with SessionLocal() as db:
        app = make_app(db)
        assert carry_forward_snapshot(db, app.id, APP_STORE, DAY) is None

        upsert_snapshot(
            db,
            app.id,
            APP_STORE,
            DAY - timedelta(days=1),
            {"active_subscribers": 12, "paid_subscribers": 10, "mrr": 50, "renewals": 3, "revenue": 20},
        )
        carried = carry_forward_snapshot(db, app.id, APP_STORE, DAY)
        assert carried.active_subscribers == 12
        assert carried.paid_subscribers == 10
        assert carried.mrr == 50.0
        assert carried.renewals == 0
        assert carried.revenue == 0.0
        assert snapshot_values(get_snapshot(db, app.id, APP_STORE, DAY))["active_subscribers"] == 12
