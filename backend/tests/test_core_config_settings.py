import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("INTEGRATION_ENCRYPTION_KEY", "reconciler-test-key-0123456789ab")
os.environ["SKIP_MIGRATIONS"] = "1"

from reconciler.core.config import Settings  # noqa: E402
from reconciler.core.platforms import platform_rank, sort_by_platform  # noqa: E402


def test_settings_defaults(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    for key in ("HISTORICAL_SYNC_DAYS", "SYNC_CHUNK_SIZE_DAYS", "PLATFORM_SYNC_ORDER", "DEFAULT_CURRENCY"):
        monkeypatch.delenv(key, raising=False)
    cfg = Settings(_env_file=None)
    assert cfg.HISTORICAL_SYNC_DAYS == 365
    assert cfg.SYNC_CHUNK_SIZE_DAYS == 30
    assert cfg.REPORT_DELAY_GRACE_DAYS == 3
    assert cfg.UNIFIED_ROLLUP_CHUNK_DAYS == 100
    assert cfg.ASSUMED_PLATFORM_FEE_RATE == 0.15
    assert cfg.PLATFORM_SYNC_ORDER == ["stripe", "googleplay", "appstore"]
    assert cfg.DEFAULT_CURRENCY == "USD"


def test_settings_env_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("HISTORICAL_SYNC_DAYS", "90")
    monkeypatch.setenv("SYNC_CHUNK_SIZE_DAYS", "7")
    monkeypatch.setenv("PLATFORM_SYNC_ORDER", '["appstore","stripe"]')
    monkeypatch.setenv("DEFAULT_CURRENCY", " nok ")
    cfg = Settings(_env_file=None)
    assert cfg.HISTORICAL_SYNC_DAYS == 90
    assert cfg.SYNC_CHUNK_SIZE_DAYS == 7
    assert cfg.PLATFORM_SYNC_ORDER == ["appstore", "stripe"]
    assert cfg.DEFAULT_CURRENCY == "NOK"


def test_settings_reject_non_positive_chunk_size(monkeypatch):
    import pytest
    from pydantic import ValidationError

    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("SYNC_CHUNK_SIZE_DAYS", "0")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_platforms_sorted_by_configured_order(monkeypatch):
    from reconciler.core import config as config_module

    monkeypatch.setattr(config_module.settings, "PLATFORM_SYNC_ORDER", ["stripe", "googleplay", "appstore"])
    ordered = sort_by_platform(["appstore", "stripe", "googleplay"], key=lambda item: item)
    assert ordered == ["stripe", "googleplay", "appstore"]
    assert platform_rank("unknown") > platform_rank("appstore")
