from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.collection import Collection

from src.hive_alerts.errors import ConfigurationError, NotFoundError
from src.hive_alerts.schemas.common import utc_now
from src.hive_alerts.schemas.thresholds import (
    GlobalScope,
    HiveScope,
    ThresholdProfile,
    ThresholdValues,
    scope_key,
)

logger = logging.getLogger(__name__)

Scope = Union[GlobalScope, HiveScope]

# model field -> stored document field
_FIELDS: Dict[str, str] = {
    "temperature_min": "temperatureMin",
    "temperature_max": "temperatureMax",
    "humidity_min": "humidityMin",
    "humidity_max": "humidityMax",
    "weight_change_threshold": "weightChangeThreshold",
    "sound_level_threshold": "soundLevelThreshold",
    "battery_warning_level": "batteryWarningLevel",
    "inspection_reminder_days": "inspectionReminderDays",
}

_BOUND_PAIRS = (("temperature_min", "temperature_max"), ("humidity_min", "humidity_max"))
_NON_NEGATIVE = ("weight_change_threshold", "sound_level_threshold", "battery_warning_level", "inspection_reminder_days")


# PUBLIC_INTERFACE
def validate_thresholds(values: ThresholdValues) -> None:
    """Reject malformed limits before anything is written."""
    for name in _FIELDS:
        if not math.isfinite(getattr(values, name)):
            raise ConfigurationError(f"{name} must be a finite number")
    for lo_name, hi_name in _BOUND_PAIRS:
        lo, hi = getattr(values, lo_name), getattr(values, hi_name)
        if not lo < hi:
            raise ConfigurationError(f"{lo_name} ({lo}) must be lower than {hi_name} ({hi})")
    for name in _NON_NEGATIVE:
        if getattr(values, name) < 0:
            raise ConfigurationError(f"{name} must not be negative")


def _values_to_doc(values: ThresholdValues) -> Dict[str, Any]:
    return {doc_key: getattr(values, field) for field, doc_key in _FIELDS.items()}


def _doc_to_profile(doc: dict, profile_id: str) -> ThresholdProfile:
    hive_id = doc.get("hiveId")
    scope: Scope = HiveScope(hive_id=hive_id) if hive_id else GlobalScope()
    fields = {field: doc[doc_key] for field, doc_key in _FIELDS.items() if doc_key in doc}
    return ThresholdProfile(
        id=profile_id,
        scope=scope,
        created_at=doc.get("createdAt"),
        updated_at=doc.get("updatedAt"),
        **fields,
    )


class ThresholdStore(ABC):
    """
    Holds the global profile and per-hive overrides. Pure data access: no resolution policy.

    Writes validate limits first and raise ConfigurationError without touching stored state.
    Saving the same scope again updates the existing profile in place (same id).
    """

    @abstractmethod
    def get_global(self) -> Optional[ThresholdProfile]:
        ...

    @abstractmethod
    def get_for_hive(self, hive_id: str) -> Optional[ThresholdProfile]:
        ...

    @abstractmethod
    def get(self, profile_id: str) -> Optional[ThresholdProfile]:
        ...

    @abstractmethod
    def list_profiles(self) -> List[ThresholdProfile]:
        ...

    @abstractmethod
    def _save(self, scope: Scope, values: ThresholdValues) -> ThresholdProfile:
        ...

    @abstractmethod
    def _replace(self, profile_id: str, values: ThresholdValues) -> ThresholdProfile:
        ...

    @abstractmethod
    def delete(self, profile_id: str) -> bool:
        ...

    @abstractmethod
    def delete_hive(self, hive_id: str) -> bool:
        ...

    # PUBLIC_INTERFACE
    def set_global(self, values: ThresholdValues) -> ThresholdProfile:
        """Create or update the single global profile."""
        validate_thresholds(values)
        return self._save(GlobalScope(), values)

    # PUBLIC_INTERFACE
    def upsert_hive(self, hive_id: str, values: ThresholdValues) -> ThresholdProfile:
        """Create or update the override for one hive."""
        validate_thresholds(values)
        return self._save(HiveScope(hive_id=hive_id), values)

    # PUBLIC_INTERFACE
    def update(self, profile_id: str, values: ThresholdValues) -> ThresholdProfile:
        """Replace the limits of an existing profile, keeping its scope. Raises NotFoundError."""
        validate_thresholds(values)
        return self._replace(profile_id, values)


class MongoThresholdStore(ThresholdStore):
    """Threshold profiles in the threshold_profiles collection (unique on scopeKey)."""

    def __init__(self, collection: Collection):
        self._col = collection

    @staticmethod
    def _oid(profile_id: str) -> Optional[ObjectId]:
        try:
            return ObjectId(profile_id)
        except (InvalidId, TypeError):
            return None

    def _to_profile(self, doc: Optional[dict]) -> Optional[ThresholdProfile]:
        return _doc_to_profile(doc, str(doc["_id"])) if doc else None

    def get_global(self) -> Optional[ThresholdProfile]:
        return self._to_profile(self._col.find_one({"scopeKey": "global"}))

    def get_for_hive(self, hive_id: str) -> Optional[ThresholdProfile]:
        return self._to_profile(self._col.find_one({"scopeKey": scope_key(HiveScope(hive_id=hive_id))}))

    def get(self, profile_id: str) -> Optional[ThresholdProfile]:
        oid = self._oid(profile_id)
        if oid is None:
            return None
        return self._to_profile(self._col.find_one({"_id": oid}))

    def list_profiles(self) -> List[ThresholdProfile]:
        docs = self._col.find({}).sort("createdAt", 1)
        return [_doc_to_profile(d, str(d["_id"])) for d in docs]

    def _save(self, scope: Scope, values: ThresholdValues) -> ThresholdProfile:
        now = utc_now()
        key = scope_key(scope)
        on_insert: Dict[str, Any] = {"scopeKey": key, "createdAt": now}
        if isinstance(scope, HiveScope):
            on_insert["hiveId"] = scope.hive_id
        doc = self._col.find_one_and_update(
            {"scopeKey": key},
            {"$set": {**_values_to_doc(values), "updatedAt": now}, "$setOnInsert": on_insert},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Saved threshold profile scope=%s id=%s", key, doc["_id"])
        return _doc_to_profile(doc, str(doc["_id"]))

    def _replace(self, profile_id: str, values: ThresholdValues) -> ThresholdProfile:
        oid = self._oid(profile_id)
        doc = None
        if oid is not None:
            doc = self._col.find_one_and_update(
                {"_id": oid},
                {"$set": {**_values_to_doc(values), "updatedAt": utc_now()}},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise NotFoundError(f"threshold profile {profile_id} not found")
        return _doc_to_profile(doc, str(doc["_id"]))

    def delete(self, profile_id: str) -> bool:
        oid = self._oid(profile_id)
        if oid is None:
            return False
        return self._col.delete_one({"_id": oid}).deleted_count > 0

    def delete_hive(self, hive_id: str) -> bool:
        return self._col.delete_one({"scopeKey": scope_key(HiveScope(hive_id=hive_id))}).deleted_count > 0


class MemoryThresholdStore(ThresholdStore):
    """
    In-process threshold profiles keyed by scope.

    Writes swap whole documents under a lock; reads take the current document without
    locking and hand out copies.
    """

    def __init__(self) -> None:
        self._docs: Dict[str, dict] = {}
        self._lock = Lock()

    def _profile(self, key: str) -> Optional[ThresholdProfile]:
        doc = self._docs.get(key)
        return _doc_to_profile(doc, doc["id"]) if doc else None

    def get_global(self) -> Optional[ThresholdProfile]:
        return self._profile("global")

    def get_for_hive(self, hive_id: str) -> Optional[ThresholdProfile]:
        return self._profile(scope_key(HiveScope(hive_id=hive_id)))

    def get(self, profile_id: str) -> Optional[ThresholdProfile]:
        for doc in list(self._docs.values()):
            if doc["id"] == profile_id:
                return _doc_to_profile(doc, doc["id"])
        return None

    def list_profiles(self) -> List[ThresholdProfile]:
        docs = sorted(self._docs.values(), key=lambda d: d["createdAt"])
        return [_doc_to_profile(d, d["id"]) for d in docs]

    def _save(self, scope: Scope, values: ThresholdValues) -> ThresholdProfile:
        key = scope_key(scope)
        now = utc_now()
        with self._lock:
            existing = self._docs.get(key)
            doc = {
                "id": existing["id"] if existing else uuid4().hex,
                "scopeKey": key,
                "createdAt": existing["createdAt"] if existing else now,
                "updatedAt": now,
                **_values_to_doc(values),
            }
            if isinstance(scope, HiveScope):
                doc["hiveId"] = scope.hive_id
            self._docs[key] = doc
        logger.info("Saved threshold profile scope=%s id=%s", key, doc["id"])
        return _doc_to_profile(doc, doc["id"])

    def _replace(self, profile_id: str, values: ThresholdValues) -> ThresholdProfile:
        with self._lock:
            for key, existing in self._docs.items():
                if existing["id"] == profile_id:
                    doc = {**existing, **_values_to_doc(values), "updatedAt": utc_now()}
                    self._docs[key] = doc
                    return _doc_to_profile(doc, profile_id)
        raise NotFoundError(f"threshold profile {profile_id} not found")

    def delete(self, profile_id: str) -> bool:
        with self._lock:
            for key, doc in list(self._docs.items()):
                if doc["id"] == profile_id:
                    del self._docs[key]
                    return True
        return False

    def delete_hive(self, hive_id: str) -> bool:
        with self._lock:
            return self._docs.pop(scope_key(HiveScope(hive_id=hive_id)), None) is not None
