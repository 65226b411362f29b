from __future__ import annotations

import httpx
import pytest

from src.hive_alerts.config import load_config, sanitize_mongo_uri
from src.hive_alerts.errors import ConfigurationError


@pytest.mark.anyio
async def test_root_health_ok(async_client: httpx.AsyncClient):
    res = await async_client.get("/")
    assert res.status_code == 200
    body = res.json()
    # HealthResponse: {status, message, timestamp}
    assert body.get("status") == "ok"
    assert "timestamp" in body


@pytest.mark.anyio
async def test_storage_diagnostics_for_memory_backend(async_client: httpx.AsyncClient):
    res = await async_client.get("/api/health/storage")
    assert res.status_code == 200
    body = res.json()
    assert body["backend"] == "memory"
    assert body["ok"] is True
    assert body["mongo_uri_sanitized"] is None
    assert body["alert_check_enabled"] is False
    assert isinstance(body["alert_check_interval_sec"], int)


def test_sanitize_masks_password():
    assert sanitize_mongo_uri("mongodb://app:s3cret@db:27017/x") == "mongodb://app:***@db:27017/x"
    assert sanitize_mongo_uri("mongodb+srv://cluster.example.net") == "mongodb+srv://cluster.example.net"


def test_load_config_defaults(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    for name in (
        "ALERT_CHECK_ENABLED",
        "ALERT_CHECK_INTERVAL_SEC",
        "BACKEND_MONGO_DB",
        "SEVERITY_BAND_MEDIUM",
        "SEVERITY_BAND_HIGH",
        "SEVERITY_BAND_CRITICAL",
    ):
        monkeypatch.delenv(name, raising=False)

    cfg = load_config()
    assert cfg.storage_backend == "memory"
    assert cfg.mongo_db_name == "hivealerts"
    assert cfg.alert_check_enabled is True
    assert cfg.alert_check_interval_sec == 300
    assert (cfg.severity_band_medium, cfg.severity_band_high, cfg.severity_band_critical) == (0.10, 0.25, 0.50)


def test_load_config_clamps_interval_and_parses_bool(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("ALERT_CHECK_INTERVAL_SEC", "1")
    monkeypatch.setenv("ALERT_CHECK_ENABLED", "off")
    cfg = load_config()
    assert cfg.alert_check_interval_sec == 5
    assert cfg.alert_check_enabled is False


def test_load_config_rejects_unordered_bands(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("SEVERITY_BAND_HIGH", "0.05")
    with pytest.raises(ConfigurationError):
        load_config()


def test_mongo_backend_requires_uri(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("STORAGE_BACKEND", "mongo")
    monkeypatch.delenv("BACKEND_MONGO_URI", raising=False)
    with pytest.raises(RuntimeError):
        load_config()

    monkeypatch.setenv("BACKEND_MONGO_URI", "http://not-mongo")
    with pytest.raises(RuntimeError):
        load_config()
