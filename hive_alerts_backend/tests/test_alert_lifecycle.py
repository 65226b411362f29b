from __future__ import annotations

import threading

import pytest

from src.hive_alerts.errors import ConflictError, PartialSweepFailure
from src.hive_alerts.schemas.alerts import AlertCreate, AlertType
from src.hive_alerts.schemas.checks import SensorSample
from src.hive_alerts.schemas.common import Severity
from src.hive_alerts.schemas.thresholds import ThresholdValues
from src.hive_alerts.services.alert_ledger import MemoryAlertLedger
from src.hive_alerts.services.alert_lifecycle import AlertLifecycleManager
from src.hive_alerts.services.anomaly_detector import AnomalyDetector
from src.hive_alerts.services.notifications import FanoutDispatcher
from src.hive_alerts.services.threshold_resolver import ThresholdResolver
from src.hive_alerts.services.threshold_store import MemoryThresholdStore

HOT = SensorSample(temperature=45.0)


class FlakyResolver(ThresholdResolver):
    """Fails for the listed hives, as if their profile lookup hit a storage error."""

    def __init__(self, store, failing):
        super().__init__(store)
        self.failing = set(failing)

    def resolve_with_source(self, hive_id):
        if hive_id in self.failing:
            raise RuntimeError(f"threshold lookup failed for {hive_id}")
        return super().resolve_with_source(hive_id)


def test_repeated_breach_keeps_one_active_alert(manager: AlertLifecycleManager, ledger: MemoryAlertLedger):
    created = [manager.evaluate("hive-1", HOT) for _ in range(10)]
    assert len(created[0]) == 1
    assert all(c == [] for c in created[1:])
    assert ledger.count({"hiveId": "hive-1", "isResolved": False}) == 1
    alert = created[0][0]
    assert alert.alert_type == AlertType.temperature
    assert alert.severity == Severity.critical
    assert alert.trigger_values["value"] == 45.0


def test_two_breached_metrics_create_two_alerts(manager: AlertLifecycleManager, dispatcher):
    created = manager.evaluate("hive-1", SensorSample(temperature=45.0, battery_level=5.0))
    assert {a.alert_type for a in created} == {AlertType.temperature, AlertType.battery}
    assert [a.id for a in dispatcher.created] == [a.id for a in created]


def test_in_bounds_sample_creates_nothing(manager: AlertLifecycleManager, dispatcher):
    assert manager.evaluate("hive-1", SensorSample(temperature=35.0)) == []
    assert dispatcher.created == []


def test_resolve_then_reopen_creates_new_alert(manager: AlertLifecycleManager, dispatcher):
    first = manager.evaluate("hive-1", HOT)[0]
    resolved = manager.resolve(first.id, "alice", "moved hive into shade")
    assert resolved.is_resolved is True
    assert dispatcher.resolved[0].id == first.id

    second = manager.evaluate("hive-1", HOT)
    assert len(second) == 1
    assert second[0].id != first.id


def test_override_applies_to_next_evaluation(manager: AlertLifecycleManager, store: MemoryThresholdStore):
    store.upsert_hive("hive-1", ThresholdValues(temperature_max=46.0))
    assert manager.evaluate("hive-1", HOT) == []
    assert len(manager.evaluate("hive-2", HOT)) == 1


def test_concurrent_evaluations_keep_invariant(manager: AlertLifecycleManager, ledger: MemoryAlertLedger):
    barrier = threading.Barrier(8)
    errors = []

    def worker():
        barrier.wait()
        try:
            manager.evaluate("hive-1", HOT)
        except Exception as exc:  # pragma: no cover - surfaced by the assert below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert ledger.count({"hiveId": "hive-1", "alertType": "Temperature", "isResolved": False}) == 1


def test_batch_isolates_failing_hive(store, ledger, dispatcher):
    manager = AlertLifecycleManager(FlakyResolver(store, {"hive-b"}), AnomalyDetector(), ledger, dispatcher)
    result = manager.evaluate_all({"hive-a": HOT, "hive-b": HOT, "hive-c": HOT, "hive-d": None})

    assert result.hives_examined == 4
    assert result.hives_without_sample == ["hive-d"]
    assert result.alerts_created == 2
    assert len(result.created_alert_ids) == 2
    assert [f.hive_id for f in result.failures] == ["hive-b"]
    assert result.failures[0].error_type == "RuntimeError"


def test_batch_where_every_hive_fails_raises(store, ledger):
    manager = AlertLifecycleManager(FlakyResolver(store, {"hive-a", "hive-b"}), AnomalyDetector(), ledger)
    with pytest.raises(PartialSweepFailure) as excinfo:
        manager.evaluate_all({"hive-a": HOT, "hive-b": HOT})
    assert len(excinfo.value.result.failures) == 2


def test_batch_without_samples_is_not_a_failure(manager: AlertLifecycleManager):
    result = manager.evaluate_all({"hive-a": None})
    assert result.alerts_created == 0
    assert result.failures == []


def test_manual_alert_conflicts_with_active(manager: AlertLifecycleManager):
    manager.evaluate("hive-1", HOT)
    with pytest.raises(ConflictError):
        manager.raise_alert(
            AlertCreate(hive_id="hive-1", alert_type=AlertType.temperature, message="Too warm")
        )
    alert = manager.raise_alert(AlertCreate(hive_id="hive-1", alert_type=AlertType.security, message="  Lid open "))
    assert alert.message == "Lid open"
    assert alert.severity == Severity.medium


def test_resolve_all_notifies_each_alert(manager: AlertLifecycleManager, dispatcher):
    manager.evaluate("hive-1", SensorSample(temperature=45.0, battery_level=5.0))
    manager.evaluate("hive-2", HOT)
    assert manager.resolve_all("hive-1", "done", "alice") == 2
    assert len(dispatcher.resolved) == 2
    assert all(a.hive_id == "hive-1" for a in dispatcher.resolved)


def test_failing_dispatcher_does_not_block_creation(store, ledger):
    class Broken:
        def alert_created(self, alert):
            raise RuntimeError("smtp down")

        def alert_resolved(self, alert):
            raise RuntimeError("smtp down")

    manager = AlertLifecycleManager(ThresholdResolver(store), AnomalyDetector(), ledger, Broken())
    created = manager.evaluate("hive-1", HOT)
    assert len(created) == 1
    assert manager.resolve(created[0].id, "alice").is_resolved is True


def test_fanout_keeps_delivering_after_one_channel_fails(store, ledger, dispatcher):
    class Broken:
        def alert_created(self, alert):
            raise RuntimeError("push gateway down")

        def alert_resolved(self, alert):
            raise RuntimeError("push gateway down")

    fanout = FanoutDispatcher([Broken(), dispatcher])
    manager = AlertLifecycleManager(ThresholdResolver(store), AnomalyDetector(), ledger, fanout)
    alert = manager.evaluate("hive-1", HOT)[0]
    manager.resolve(alert.id, "alice")
    assert [a.id for a in dispatcher.created] == [alert.id]
    assert [a.id for a in dispatcher.resolved] == [alert.id]
