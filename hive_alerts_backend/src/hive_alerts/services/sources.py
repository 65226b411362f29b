"""Read-side collaborators: the hive directory and the sensor sample source.

Both are owned by other parts of the platform (hive CRUD, device ingestion); the engine only
reads from them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from threading import Lock
from typing import Dict, List, Optional, Protocol

from pymongo import DESCENDING
from pymongo.collection import Collection

from src.hive_alerts.schemas.checks import SensorSample

logger = logging.getLogger(__name__)


class HiveDirectory(Protocol):
    def list_hive_ids(self) -> List[str]:
        ...

    def last_inspection(self, hive_id: str) -> Optional[datetime]:
        ...


class SensorSource(Protocol):
    def latest_sample(self, hive_id: str) -> Optional[SensorSample]:
        ...


def _with_weight_change(latest: SensorSample, previous: Optional[SensorSample]) -> SensorSample:
    """Derive weight_change from absolute weights when the device does not report a delta."""
    if latest.weight_change is not None or latest.weight is None:
        return latest
    if previous is None or previous.weight is None:
        return latest
    return latest.model_copy(update={"weight_change": latest.weight - previous.weight})


def _doc_to_sample(doc: dict) -> SensorSample:
    return SensorSample(
        temperature=doc.get("temperature"),
        humidity=doc.get("humidity"),
        weight=doc.get("weight"),
        weight_change=doc.get("weightChange"),
        sound_level=doc.get("soundLevel"),
        battery_level=doc.get("batteryLevel"),
        timestamp=doc["ts"],
    )


class MongoHiveDirectory:
    """Active hives from the `hives` collection."""

    def __init__(self, collection: Collection):
        self._col = collection

    def list_hive_ids(self) -> List[str]:
        docs = self._col.find({"isActive": True}, projection={"_id": 0, "id": 1}).sort("id", 1)
        return [d["id"] for d in docs if d.get("id")]

    def last_inspection(self, hive_id: str) -> Optional[datetime]:
        doc = self._col.find_one({"id": hive_id}, projection={"_id": 0, "lastInspectionAt": 1})
        return (doc or {}).get("lastInspectionAt")


class MongoSensorSource:
    """Latest sample per hive from `sensor_samples`, enriched with the hive's last inspection."""

    def __init__(self, samples: Collection, directory: HiveDirectory):
        self._col = samples
        self._directory = directory

    def latest_sample(self, hive_id: str) -> Optional[SensorSample]:
        docs = list(self._col.find({"hiveId": hive_id}, projection={"_id": 0}).sort("ts", DESCENDING).limit(2))
        if not docs:
            return None
        latest = _doc_to_sample(docs[0])
        previous = _doc_to_sample(docs[1]) if len(docs) > 1 else None
        sample = _with_weight_change(latest, previous)
        inspected = self._directory.last_inspection(hive_id)
        if inspected is not None:
            sample = sample.model_copy(update={"last_inspection_at": inspected})
        return sample


class MemoryHives:
    """
    In-process hive directory and sample source for the memory backend.

    Keeps the last two samples per hive, which is all weight_change derivation needs.
    """

    def __init__(self) -> None:
        self._hives: Dict[str, Optional[datetime]] = {}
        self._samples: Dict[str, List[SensorSample]] = {}
        self._lock = Lock()

    def add_hive(self, hive_id: str, last_inspection_at: Optional[datetime] = None) -> None:
        with self._lock:
            self._hives[hive_id] = last_inspection_at

    def record(self, hive_id: str, sample: SensorSample) -> None:
        with self._lock:
            self._hives.setdefault(hive_id, None)
            self._samples[hive_id] = (self._samples.get(hive_id, []) + [sample])[-2:]

    def list_hive_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._hives)

    def last_inspection(self, hive_id: str) -> Optional[datetime]:
        with self._lock:
            return self._hives.get(hive_id)

    def latest_sample(self, hive_id: str) -> Optional[SensorSample]:
        with self._lock:
            recent = list(self._samples.get(hive_id, []))
            inspected = self._hives.get(hive_id)
        if not recent:
            return None
        previous = recent[-2] if len(recent) > 1 else None
        sample = _with_weight_change(recent[-1], previous)
        if inspected is not None:
            sample = sample.model_copy(update={"last_inspection_at": inspected})
        return sample
