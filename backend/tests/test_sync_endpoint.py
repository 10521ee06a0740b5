import os
from datetime import date
from uuid import uuid4

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("INTEGRATION_ENCRYPTION_KEY", "reconciler-test-key-0123456789ab")
os.environ["SKIP_MIGRATIONS"] = "1"

import reconciler.core.db as db_module  # noqa: E402
from reconciler.core.db import Base  # noqa: E402
from reconciler.core.platforms import APP_STORE, STRIPE  # noqa: E402
from reconciler.core.time import utcnow  # noqa: E402
from reconciler.crud.platform_connections import get_connection  # noqa: E402
from reconciler.crud.snapshots import upsert_snapshot  # noqa: E402
from reconciler.crud.sync_logs import append_log  # noqa: E402
from reconciler.crud.sync_sessions import start_session  # noqa: E402
from reconciler.jobs.backfills.base import start_app_store_backfill  # noqa: E402
from reconciler.main import app  # noqa: E402
from reconciler.models.job_queue import JobQueue  # noqa: E402
from tests.factories import DEFAULT_CREDENTIALS, make_app, make_connection  # noqa: E402


def _setup_db(db_url: str):
    engine = create_engine(
        db_url,
        connect_args={"check_same_thread": False},
        future=True,
    )
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    db_module.engine = engine
    db_module.SessionLocal = SessionLocal
    return SessionLocal


def test_trigger_sync_enqueues_job():
    SessionLocal = _setup_db(f"sqlite:///./sync_trigger_{uuid4().hex}.db")
    with SessionLocal() as db:
        app_id = make_app(db).id

    client = TestClient(app)
    resp = client.post(f"/api/v1/apps/{app_id}/sync", json={"platform": "Stripe", "force_historical": True})
    assert resp.status_code == 202
    body = resp.json()
    assert body["status"] == "active"
    assert body["app_id"] == app_id

    with SessionLocal() as db:
        job = db.query(JobQueue).one()
        assert job.queue_name == "sync"
        assert job.job_type == "platform_sync"
        assert job.payload_json == {
            "app_id": app_id,
            "platform": STRIPE,
            "force_historical": True,
            "session_id": body["id"],
        }


def test_trigger_sync_rejects_bad_input():
    SessionLocal = _setup_db(f"sqlite:///./sync_trigger_bad_{uuid4().hex}.db")
    with SessionLocal() as db:
        app_id = make_app(db).id

    client = TestClient(app)
    assert client.post(f"/api/v1/apps/{app_id}/sync", json={"platform": "amazon"}).status_code == 400
    assert client.post("/api/v1/apps/9999/sync", json={}).status_code == 404


def test_active_and_cancel():
    SessionLocal = _setup_db(f"sqlite:///./sync_cancel_api_{uuid4().hex}.db")
    with SessionLocal() as db:
        app_id = make_app(db).id
        session_id = start_session(db, app_id).id

    client = TestClient(app)
    active = client.get(f"/api/v1/apps/{app_id}/sync/active")
    assert active.status_code == 200
    assert active.json()["id"] == session_id

    resp = client.post(f"/api/v1/apps/{app_id}/sync/cancel")
    assert resp.status_code == 200
    assert resp.json() == {"cancelled": 1}
    assert client.post(f"/api/v1/apps/{app_id}/sync/cancel").status_code == 404
    assert client.get(f"/api/v1/apps/{app_id}/sync/active").json() is None


def test_progress_and_logs():
    SessionLocal = _setup_db(f"sqlite:///./sync_progress_api_{uuid4().hex}.db")
    with SessionLocal() as db:
        app_row = make_app(db)
        app_id = app_row.id
        connection = make_connection(db, app=app_row, platform=APP_STORE)
        session = start_session(db, app_id)
        start_app_store_backfill(
            db,
            connection,
            dict(DEFAULT_CREDENTIALS[APP_STORE]),
            session_id=session.id,
            total_days=90,
            chunk_size_days=30,
            today=date(2026, 3, 31),
        )
        append_log(db, app_id, "older line")
        append_log(db, app_id, "newest line", level="success")

    client = TestClient(app)
    progress = client.get(f"/api/v1/apps/{app_id}/sync/progress")
    assert progress.status_code == 200
    body = progress.json()
    assert body["platform"] == APP_STORE
    assert body["total_chunks"] == 3
    assert body["current_chunk"] == 0
    assert body["percentage"] == 0.0
    assert "credentials_encrypted" not in body

    logs = client.get(f"/api/v1/apps/{app_id}/sync/logs", params={"limit": 1})
    assert logs.status_code == 200
    assert [entry["message"] for entry in logs.json()] == ["newest line"]
    assert client.get(f"/api/v1/apps/{app_id}/sync/logs", params={"limit": 0}).status_code == 422


def test_reset_clears_last_sync():
    SessionLocal = _setup_db(f"sqlite:///./sync_reset_api_{uuid4().hex}.db")
    with SessionLocal() as db:
        app_row = make_app(db)
        app_id = app_row.id
        connection = make_connection(db, app=app_row, platform=STRIPE)
        connection.last_sync_at = utcnow()
        db.commit()
        connection_id = connection.id

    client = TestClient(app)
    resp = client.post(f"/api/v1/apps/{app_id}/sync/reset", params={"platform": "stripe"})
    assert resp.status_code == 200
    assert resp.json() == {"connections_reset": 1}
    assert client.post(f"/api/v1/apps/{app_id}/sync/reset", params={"platform": "amazon"}).status_code == 400

    with SessionLocal() as db:
        assert get_connection(db, connection_id).last_sync_at is None


def test_snapshot_listing():
    SessionLocal = _setup_db(f"sqlite:///./snapshots_api_{uuid4().hex}.db")
    with SessionLocal() as db:
        app_id = make_app(db).id
        upsert_snapshot(db, app_id, STRIPE, date(2026, 3, 1), {"mrr": 120.5, "active_subscribers": 12})
        upsert_snapshot(db, app_id, STRIPE, date(2026, 3, 2), {"mrr": 130, "active_subscribers": 13})

    client = TestClient(app)
    resp = client.get(
        f"/api/v1/apps/{app_id}/metrics/snapshots",
        params={"platform": "stripe", "start": "2026-03-01", "end": "2026-03-31"},
    )
    assert resp.status_code == 200
    rows = resp.json()
    assert [row["date"] for row in rows] == ["2026-03-01", "2026-03-02"]
    assert rows[0]["mrr"] == 120.5
    assert rows[1]["active_subscribers"] == 13

    params = {"platform": "stripe", "start": "2026-03-05", "end": "2026-03-01"}
    assert client.get(f"/api/v1/apps/{app_id}/metrics/snapshots", params=params).status_code == 400
    assert client.get(f"/api/v1/apps/{app_id}/metrics/snapshots", params={"platform": "x"}).status_code == 400
    assert client.get("/api/v1/apps/9999/metrics/snapshots").status_code == 404


def test_record_exchange_rate():
    _setup_db(f"sqlite:///./rates_api_{uuid4().hex}.db")
    client = TestClient(app)
    resp = client.post(
        "/api/v1/exchange-rates",
        json={"from_currency": "usd", "to_currency": "nok", "rate": 10.5, "year_month": "2026-03"},
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["from_currency"] == "USD"
    assert body["to_currency"] == "NOK"
    assert body["rate"] == 10.5

    bad = client.post("/api/v1/exchange-rates", json={"from_currency": "USD", "to_currency": "NOK", "rate": 0})
    assert bad.status_code == 422


def test_health_and_prometheus_endpoints():
    client = TestClient(app)
    assert client.get("/ping").json() == {"message": "pong"}
    assert client.get("/api/v1/health").status_code == 200
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "requests_total" in metrics.text
