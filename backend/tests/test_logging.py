import logging
import os

from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("INTEGRATION_ENCRYPTION_KEY", "reconciler-test-key-0123456789ab")
os.environ["SKIP_MIGRATIONS"] = "1"

from reconciler.core.logging import JsonLogFormatter  # noqa: E402
from reconciler.main import app  # noqa: E402


def test_logging_includes_request_id(caplog):
    logger = logging.getLogger("api_logger")
    logger.addHandler(caplog.handler)
    logger.setLevel(logging.INFO)
    try:
        client = TestClient(app)
        response = client.get("/ping", headers={"X-Request-ID": "req-123"})
        assert response.status_code == 200
        assert response.headers.get("X-Request-ID") == "req-123"

        records = [record for record in caplog.records if record.getMessage() == "request.completed"]
        assert records, "Expected a structured request log entry"
        entry = records[-1]
        assert getattr(entry, "request_id", None) == "req-123"
        assert getattr(entry, "status_code", None) == 200
    finally:
        logger.removeHandler(caplog.handler)


def test_request_id_generated_when_missing():
    client = TestClient(app)
    response = client.get("/ping")
    assert len(response.headers.get("X-Request-ID", "")) == 32


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("reconciler.sync", logging.INFO, __file__, 1, "Sync started", None, None)
    record.app_id = 7
    record.platform = "stripe"
    line = JsonLogFormatter().format(record)
    assert '"message":"Sync started"' in line
    assert '"app_id":7' in line
    assert '"platform":"stripe"' in line
