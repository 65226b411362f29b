from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from src.hive_alerts.db.mongo import MongoManager
from src.hive_alerts.errors import AlreadyResolvedError, ConfigurationError, ConflictError, NotFoundError
from src.hive_alerts.schemas.alerts import AlertsQuery, AlertType
from src.hive_alerts.schemas.checks import SensorSample
from src.hive_alerts.schemas.common import Severity
from src.hive_alerts.schemas.thresholds import ThresholdValues
from src.hive_alerts.services.alert_ledger import MongoAlertLedger
from src.hive_alerts.services.sources import MongoHiveDirectory, MongoSensorSource
from src.hive_alerts.services.threshold_resolver import ThresholdResolver
from src.hive_alerts.services.threshold_store import MongoThresholdStore


@pytest.fixture(scope="module")
def mongo(mongo_uri: str) -> Iterator[MongoManager]:
    """Manager on a throwaway database, dropped after the module."""
    manager = MongoManager(mongo_uri, f"hivealerts_test_{uuid4().hex[:8]}")
    if not manager.ping():
        pytest.skip("MongoDB not reachable")
    manager.init_indexes()
    try:
        yield manager
    finally:
        manager.db().client.drop_database(manager.db().name)
        manager.close()


@pytest.fixture(autouse=True)
def _clean_collections(mongo: MongoManager) -> None:
    # delete_many keeps the indexes the invariants rely on
    cols = mongo.collections()
    for col in (cols.threshold_profiles, cols.alerts, cols.hives, cols.sensor_samples):
        col.delete_many({})


def test_partial_unique_index_enforces_one_active_alert(mongo: MongoManager):
    ledger = MongoAlertLedger(mongo.collections().alerts)
    first = ledger.create("hive-1", AlertType.temperature, Severity.high, "hot")
    with pytest.raises(ConflictError) as excinfo:
        ledger.create("hive-1", AlertType.temperature, Severity.low, "hot again")
    assert excinfo.value.existing_id == first.id

    ledger.resolve(first.id, "alice")
    second = ledger.create("hive-1", AlertType.temperature, Severity.low, "hot again")
    assert second.id != first.id

    with pytest.raises(AlreadyResolvedError):
        ledger.resolve(first.id, "bob")
    with pytest.raises(NotFoundError):
        ledger.resolve("000000000000000000000000", "bob")
    with pytest.raises(NotFoundError):
        ledger.resolve("not-an-object-id", "bob")


def test_ledger_list_resolve_all_and_stats(mongo: MongoManager):
    ledger = MongoAlertLedger(mongo.collections().alerts)
    a = ledger.create("hive-1", AlertType.temperature, Severity.low, "a")
    b = ledger.create("hive-1", AlertType.battery, Severity.critical, "b")
    c = ledger.create("hive-2", AlertType.temperature, Severity.critical, "c")

    items, total = ledger.list(AlertsQuery())
    assert total == 3
    assert [x.id for x in items] == [c.id, b.id, a.id]

    assert ledger.resolve_all("hive-1", "cleanup", "alice") == 2
    assert ledger.get(a.id).resolution_notes == "cleanup"
    stats = ledger.stats()
    assert stats.active == 1
    assert stats.active_by_severity["Critical"] == 1


def test_threshold_store_upsert_and_resolution(mongo: MongoManager):
    store = MongoThresholdStore(mongo.collections().threshold_profiles)
    resolver = ThresholdResolver(store)
    assert resolver.describe("hive-1").source == "default"

    g = store.set_global(ThresholdValues(temperature_max=36.0))
    assert store.set_global(ThresholdValues(temperature_max=35.0)).id == g.id
    store.upsert_hive("hive-1", ThresholdValues(temperature_max=40.0))

    assert resolver.resolve("hive-1").temperature_max == 40.0
    assert resolver.resolve("hive-2").temperature_max == 35.0

    with pytest.raises(ConfigurationError):
        store.upsert_hive("hive-1", ThresholdValues(humidity_min=90.0))
    assert store.get_for_hive("hive-1").humidity_min == 40.0


def test_sensor_source_derives_weight_change(mongo: MongoManager):
    cols = mongo.collections()
    now = datetime.now(timezone.utc)
    cols.hives.insert_one({"id": "hive-1", "isActive": True, "lastInspectionAt": now - timedelta(days=2)})
    cols.hives.insert_one({"id": "hive-2", "isActive": False})
    cols.sensor_samples.insert_many(
        [
            {"hiveId": "hive-1", "ts": now - timedelta(minutes=10), "weight": 40.0},
            {"hiveId": "hive-1", "ts": now, "weight": 43.0, "temperature": 35.0},
        ]
    )
    directory = MongoHiveDirectory(cols.hives)
    source = MongoSensorSource(cols.sensor_samples, directory)

    assert directory.list_hive_ids() == ["hive-1"]
    sample = source.latest_sample("hive-1")
    assert isinstance(sample, SensorSample)
    assert sample.weight_change == pytest.approx(3.0)
    assert sample.last_inspection_at is not None
    assert source.latest_sample("hive-2") is None


class InterleavingCollection:
    """Collection wrapper that runs `between` once, right after the first find() has been read."""

    def __init__(self, col, between):
        self._col = col
        self._between = between

    def find(self, *args, **kwargs):
        docs = list(self._col.find(*args, **kwargs))
        between, self._between = self._between, None
        if between is not None:
            between()
        return docs

    def __getattr__(self, name):
        return getattr(self._col, name)


def test_overlapping_bulk_resolves_report_each_alert_once(mongo: MongoManager, monkeypatch):
    # Both bulk resolves stamp the same resolvedAt, as two calls within one millisecond would.
    fixed = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    monkeypatch.setattr("src.hive_alerts.services.alert_ledger.utc_now", lambda: fixed)

    col = mongo.collections().alerts
    other = MongoAlertLedger(col)
    created = [
        other.create("hive-1", AlertType.temperature, Severity.low, "a"),
        other.create("hive-1", AlertType.humidity, Severity.low, "b"),
        other.create("hive-2", AlertType.battery, Severity.low, "c"),
    ]
    won_by_other = []
    ledger = MongoAlertLedger(InterleavingCollection(col, lambda: won_by_other.extend(other.resolve_many())))

    late = ledger.resolve_many(resolved_by="bob")
    assert sorted(a.id for a in won_by_other) == sorted(a.id for a in created)
    assert late == []
    assert ledger.resolve_all() == 0


def test_bulk_resolve_skips_alert_resolved_individually(mongo: MongoManager):
    ledger = MongoAlertLedger(mongo.collections().alerts)
    a = ledger.create("hive-1", AlertType.temperature, Severity.low, "a")
    b = ledger.create("hive-1", AlertType.battery, Severity.low, "b")
    ledger.resolve(a.id, "alice", "done by hand")

    resolved = ledger.resolve_many("hive-1", resolved_by="bob")
    assert [x.id for x in resolved] == [b.id]
    assert ledger.get(a.id).resolved_by == "alice"
