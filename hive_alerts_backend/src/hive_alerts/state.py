from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI

from src.hive_alerts.config import BackendConfig
from src.hive_alerts.db.mongo import MongoManager
from src.hive_alerts.services.alert_ledger import AlertLedger, MemoryAlertLedger, MongoAlertLedger
from src.hive_alerts.services.alert_lifecycle import AlertLifecycleManager
from src.hive_alerts.services.anomaly_detector import AnomalyDetector, SeverityPolicy
from src.hive_alerts.services.check_scheduler import CheckScheduler
from src.hive_alerts.services.notifications import NotificationDispatcher
from src.hive_alerts.services.sources import (
    HiveDirectory,
    MemoryHives,
    MongoHiveDirectory,
    MongoSensorSource,
    SensorSource,
)
from src.hive_alerts.services.threshold_resolver import ThresholdResolver
from src.hive_alerts.services.threshold_store import MemoryThresholdStore, MongoThresholdStore, ThresholdStore


@dataclass
class AppState:
    """Typed app.state container for shared singletons."""

    config: BackendConfig
    mongo: Optional[MongoManager]
    thresholds: ThresholdStore
    resolver: ThresholdResolver
    ledger: AlertLedger
    manager: AlertLifecycleManager
    directory: HiveDirectory
    source: SensorSource
    scheduler: CheckScheduler
    check_task: Optional[object] = None  # asyncio.Task, but kept loose to avoid import cycles


# PUBLIC_INTERFACE
def build_state(config: BackendConfig, dispatcher: Optional[NotificationDispatcher] = None) -> AppState:
    """Wire storage, engine components and scheduler for the configured backend."""
    mongo: Optional[MongoManager] = None
    if config.storage_backend == "memory":
        thresholds: ThresholdStore = MemoryThresholdStore()
        ledger: AlertLedger = MemoryAlertLedger()
        hives = MemoryHives()
        directory: HiveDirectory = hives
        source: SensorSource = hives
    else:
        assert config.mongo_uri is not None
        mongo = MongoManager(config.mongo_uri, config.mongo_db_name)
        cols = mongo.collections()
        thresholds = MongoThresholdStore(cols.threshold_profiles)
        ledger = MongoAlertLedger(cols.alerts)
        directory = MongoHiveDirectory(cols.hives)
        source = MongoSensorSource(cols.sensor_samples, directory)

    resolver = ThresholdResolver(thresholds)
    detector = AnomalyDetector(SeverityPolicy.from_config(config))
    manager = AlertLifecycleManager(resolver, detector, ledger, dispatcher)
    return AppState(
        config=config,
        mongo=mongo,
        thresholds=thresholds,
        resolver=resolver,
        ledger=ledger,
        manager=manager,
        directory=directory,
        source=source,
        scheduler=CheckScheduler(manager, directory, source),
    )


# PUBLIC_INTERFACE
def init_state(app: FastAPI, config: BackendConfig, dispatcher: Optional[NotificationDispatcher] = None) -> None:
    """Initialize app.state with config and engine components."""
    app.state.state = build_state(config, dispatcher)


# PUBLIC_INTERFACE
def get_state(app: FastAPI) -> AppState:
    """Fetch typed AppState from a FastAPI app."""
    return app.state.state  # type: ignore[attr-defined]
