import os

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("INTEGRATION_ENCRYPTION_KEY", "reconciler-test-key-0123456789ab")

from reconciler.core import config as config_module  # noqa: E402
from reconciler.core.crypto import decrypt_json, encrypt_json, reset_fernet  # noqa: E402


def test_credentials_round_trip_through_fernet():
    token = encrypt_json({"api_key": "sk_test_123", "vendor_number": "85000000"})
    assert "sk_test_123" not in token
    assert decrypt_json(token) == {"api_key": "sk_test_123", "vendor_number": "85000000"}


def test_token_from_another_key_is_rejected(monkeypatch):
    token = encrypt_json({"api_key": "sk_test_123"})
    monkeypatch.setattr(config_module.settings, "INTEGRATION_ENCRYPTION_KEY", "another-test-key-0123456789abcde")
    reset_fernet()
    try:
        with pytest.raises(ValueError):
            decrypt_json(token)
    finally:
        monkeypatch.undo()
        reset_fernet()


def test_missing_key_is_reported(monkeypatch):
    monkeypatch.setattr(config_module.settings, "INTEGRATION_ENCRYPTION_KEY", None)
    monkeypatch.delenv("INTEGRATION_ENCRYPTION_KEY", raising=False)
    reset_fernet()
    try:
        with pytest.raises(ValueError):
            encrypt_json({"api_key": "x"})
    finally:
        monkeypatch.undo()
        reset_fernet()
