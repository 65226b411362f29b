from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator
from typing import List

import httpx
import pytest

# Module-level `app` in main.py loads config on import; default the suite to the in-process backend.
os.environ.setdefault("STORAGE_BACKEND", "memory")

from src.hive_alerts.config import BackendConfig  # noqa: E402
from src.hive_alerts.main import create_app  # noqa: E402
from src.hive_alerts.schemas.alerts import Alert  # noqa: E402
from src.hive_alerts.services.alert_ledger import MemoryAlertLedger  # noqa: E402
from src.hive_alerts.services.alert_lifecycle import AlertLifecycleManager  # noqa: E402
from src.hive_alerts.services.anomaly_detector import AnomalyDetector  # noqa: E402
from src.hive_alerts.services.sources import MemoryHives  # noqa: E402
from src.hive_alerts.services.threshold_resolver import ThresholdResolver  # noqa: E402
from src.hive_alerts.services.threshold_store import MemoryThresholdStore  # noqa: E402
from src.hive_alerts.state import AppState, get_state  # noqa: E402


class RecordingDispatcher:
    """Collects lifecycle events so tests can assert on notifications."""

    def __init__(self) -> None:
        self.created: List[Alert] = []
        self.resolved: List[Alert] = []

    def alert_created(self, alert: Alert) -> None:
        self.created.append(alert)

    def alert_resolved(self, alert: Alert) -> None:
        self.resolved.append(alert)


def memory_config(**overrides) -> BackendConfig:
    """Config for the in-process backend with the periodic check off."""
    values = dict(
        storage_backend="memory",
        mongo_uri=None,
        mongo_db_name="hivealerts_test",
        mongo_uri_source="unset",
        alert_check_enabled=False,
        alert_check_interval_sec=300,
        severity_band_medium=0.10,
        severity_band_high=0.25,
        severity_band_critical=0.50,
    )
    values.update(overrides)
    return BackendConfig(**values)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def store() -> MemoryThresholdStore:
    return MemoryThresholdStore()


@pytest.fixture
def ledger() -> MemoryAlertLedger:
    return MemoryAlertLedger()


@pytest.fixture
def hives() -> MemoryHives:
    return MemoryHives()


@pytest.fixture
def manager(
    store: MemoryThresholdStore, ledger: MemoryAlertLedger, dispatcher: RecordingDispatcher
) -> AlertLifecycleManager:
    """Lifecycle manager over fresh in-memory storage with default severity bands."""
    return AlertLifecycleManager(ThresholdResolver(store), AnomalyDetector(), ledger, dispatcher)


@pytest.fixture
def app(dispatcher: RecordingDispatcher):
    """
    Fresh FastAPI app per test, backed by in-memory storage.

    The periodic check is disabled so tests drive sweeps explicitly through the API.
    """
    return create_app(memory_config(), dispatcher=dispatcher)


@pytest.fixture
def app_state(app) -> AppState:
    return get_state(app)


@pytest.fixture
async def async_client(app) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client bound to the FastAPI ASGI app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(scope="session")
def mongo_uri() -> Iterator[str]:
    """MongoDB URI for integration tests; skips them when BACKEND_MONGO_URI is not set."""
    uri = os.getenv("BACKEND_MONGO_URI")
    if not uri:
        pytest.skip("BACKEND_MONGO_URI not set; skipping MongoDB integration tests")
    yield uri
