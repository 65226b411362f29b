from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from itertools import count
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from src.hive_alerts.errors import AlreadyResolvedError, ConflictError, NotFoundError
from src.hive_alerts.schemas.alerts import Alert, AlertsQuery, AlertStats, AlertType, TriggerValues
from src.hive_alerts.schemas.common import Severity, utc_now

logger = logging.getLogger(__name__)


def _doc_to_alert(doc: dict, alert_id: str) -> Alert:
    return Alert(
        id=alert_id,
        hive_id=doc["hiveId"],
        alert_type=doc["alertType"],
        severity=doc["severity"],
        message=doc.get("message", ""),
        trigger_values=doc.get("triggerValues"),
        created_at=doc["createdAt"],
        is_resolved=bool(doc.get("isResolved", False)),
        resolved_at=doc.get("resolvedAt"),
        resolved_by=doc.get("resolvedBy"),
        resolution_notes=doc.get("resolutionNotes"),
    )


def _new_doc(
    hive_id: str,
    alert_type: AlertType,
    severity: Severity,
    message: str,
    trigger_values: Optional[TriggerValues],
) -> Dict[str, Any]:
    return {
        "hiveId": hive_id,
        "alertType": AlertType(alert_type).value,
        "severity": Severity(severity).value,
        "message": message,
        "triggerValues": dict(trigger_values) if trigger_values else None,
        "createdAt": utc_now(),
        "isResolved": False,
        "resolvedAt": None,
        "resolvedBy": None,
        "resolutionNotes": None,
    }


def _resolution_fields(resolved_by: Optional[str], resolution_notes: Optional[str]) -> Dict[str, Any]:
    return {
        "isResolved": True,
        "resolvedAt": utc_now(),
        "resolvedBy": resolved_by,
        "resolutionNotes": resolution_notes,
    }


def _query_from_filters(q: AlertsQuery) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if q.hive_id:
        query["hiveId"] = q.hive_id
    if q.severity is not None:
        query["severity"] = q.severity.value
    if q.alert_type is not None:
        query["alertType"] = q.alert_type.value
    if q.is_resolved is not None:
        query["isResolved"] = q.is_resolved
    return query


class AlertLedger(ABC):
    """
    Every alert, active and resolved, for every hive.

    Invariant: at most one unresolved alert per (hive_id, alert_type). `create` enforces it
    atomically in storage and raises ConflictError instead of trusting callers to have
    checked `find_active` first.
    """

    @abstractmethod
    def get(self, alert_id: str) -> Optional[Alert]:
        ...

    @abstractmethod
    def find_active(self, hive_id: str, alert_type: AlertType) -> Optional[Alert]:
        ...

    @abstractmethod
    def create(
        self,
        hive_id: str,
        alert_type: AlertType,
        severity: Severity,
        message: str,
        trigger_values: Optional[TriggerValues] = None,
    ) -> Alert:
        ...

    @abstractmethod
    def resolve(self, alert_id: str, resolved_by: str, resolution_notes: Optional[str] = None) -> Alert:
        ...

    @abstractmethod
    def resolve_many(
        self,
        hive_id: Optional[str] = None,
        resolution_notes: Optional[str] = None,
        resolved_by: Optional[str] = None,
    ) -> List[Alert]:
        """Resolve every unresolved alert (optionally for one hive); returns the alerts resolved."""

    # PUBLIC_INTERFACE
    def resolve_all(
        self,
        hive_id: Optional[str] = None,
        resolution_notes: Optional[str] = None,
        resolved_by: Optional[str] = None,
    ) -> int:
        """Bulk-resolve unresolved alerts, optionally scoped to one hive; returns how many were resolved."""
        return len(self.resolve_many(hive_id, resolution_notes, resolved_by))

    @abstractmethod
    def list(self, filters: AlertsQuery) -> Tuple[List[Alert], int]:
        """Alerts matching filters, newest first, plus the total number matching."""

    @abstractmethod
    def count(self, query: Dict[str, Any]) -> int:
        ...

    # PUBLIC_INTERFACE
    def stats(self) -> AlertStats:
        """Totals plus active counts per severity and per alert type."""
        active = self.count({"isResolved": False})
        total = self.count({})
        return AlertStats(
            total=total,
            active=active,
            resolved=total - active,
            active_by_severity={
                s.value: self.count({"isResolved": False, "severity": s.value}) for s in Severity
            },
            active_by_type={
                t.value: self.count({"isResolved": False, "alertType": t.value}) for t in AlertType
            },
        )


class MongoAlertLedger(AlertLedger):
    """
    Alerts in the `alerts` collection.

    Relies on the partial unique index on (hiveId, alertType) filtered to isResolved=false
    (see MongoManager.init_indexes); a concurrent duplicate insert surfaces as
    DuplicateKeyError and is translated to ConflictError.
    """

    def __init__(self, collection: Collection):
        self._col = collection

    @staticmethod
    def _oid(alert_id: str) -> Optional[ObjectId]:
        try:
            return ObjectId(alert_id)
        except (InvalidId, TypeError):
            return None

    def get(self, alert_id: str) -> Optional[Alert]:
        oid = self._oid(alert_id)
        if oid is None:
            return None
        doc = self._col.find_one({"_id": oid})
        return _doc_to_alert(doc, str(doc["_id"])) if doc else None

    def find_active(self, hive_id: str, alert_type: AlertType) -> Optional[Alert]:
        doc = self._col.find_one(
            {"hiveId": hive_id, "alertType": AlertType(alert_type).value, "isResolved": False}
        )
        return _doc_to_alert(doc, str(doc["_id"])) if doc else None

    def create(
        self,
        hive_id: str,
        alert_type: AlertType,
        severity: Severity,
        message: str,
        trigger_values: Optional[TriggerValues] = None,
    ) -> Alert:
        doc = _new_doc(hive_id, alert_type, severity, message, trigger_values)
        try:
            res = self._col.insert_one(doc)
        except DuplicateKeyError as exc:
            existing = self.find_active(hive_id, alert_type)
            raise ConflictError(hive_id, doc["alertType"], existing.id if existing else None) from exc
        return _doc_to_alert(doc, str(res.inserted_id))

    def resolve(self, alert_id: str, resolved_by: str, resolution_notes: Optional[str] = None) -> Alert:
        oid = self._oid(alert_id)
        if oid is None:
            raise NotFoundError(f"alert {alert_id} not found")
        doc = self._col.find_one_and_update(
            {"_id": oid, "isResolved": False},
            {"$set": _resolution_fields(resolved_by, resolution_notes)},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            if self._col.count_documents({"_id": oid}, limit=1) == 0:
                raise NotFoundError(f"alert {alert_id} not found")
            raise AlreadyResolvedError(alert_id)
        return _doc_to_alert(doc, str(doc["_id"]))

    def resolve_many(
        self,
        hive_id: Optional[str] = None,
        resolution_notes: Optional[str] = None,
        resolved_by: Optional[str] = None,
    ) -> List[Alert]:
        query: Dict[str, Any] = {"isResolved": False}
        if hive_id:
            query["hiveId"] = hive_id
        ids = [d["_id"] for d in self._col.find(query, projection={"_id": 1})]
        fields = _resolution_fields(resolved_by, resolution_notes)
        resolved: List[Alert] = []
        for oid in ids:
            # Only the call that flips isResolved gets the document back.
            doc = self._col.find_one_and_update(
                {"_id": oid, "isResolved": False},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
            if doc is not None:
                resolved.append(_doc_to_alert(doc, str(doc["_id"])))
        return resolved

    def list(self, filters: AlertsQuery) -> Tuple[List[Alert], int]:
        q = _query_from_filters(filters)
        total = int(self._col.count_documents(q))
        docs = (
            self._col.find(q)
            .sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
            .skip(int(filters.offset))
            .limit(int(filters.limit))
        )
        return [_doc_to_alert(d, str(d["_id"])) for d in docs], total

    def count(self, query: Dict[str, Any]) -> int:
        return int(self._col.count_documents(query))


class MemoryAlertLedger(AlertLedger):
    """
    In-process ledger.

    An index of (hiveId, alertType) -> id for unresolved alerts plays the role of the
    partial unique index; it is read and written under the same lock as the documents, so
    the active check and the insert are one atomic step.
    """

    def __init__(self) -> None:
        self._docs: Dict[str, dict] = {}
        self._active: Dict[Tuple[str, str], str] = {}
        self._lock = Lock()
        # insertion sequence breaks createdAt ties for stable ordering
        self._seq = count()

    def _alert(self, alert_id: str) -> Alert:
        return _doc_to_alert(self._docs[alert_id], alert_id)

    @staticmethod
    def _matches(doc: dict, query: Dict[str, Any]) -> bool:
        return all(doc.get(k) == v for k, v in query.items())

    def get(self, alert_id: str) -> Optional[Alert]:
        with self._lock:
            return self._alert(alert_id) if alert_id in self._docs else None

    def find_active(self, hive_id: str, alert_type: AlertType) -> Optional[Alert]:
        with self._lock:
            alert_id = self._active.get((hive_id, AlertType(alert_type).value))
            return self._alert(alert_id) if alert_id else None

    def create(
        self,
        hive_id: str,
        alert_type: AlertType,
        severity: Severity,
        message: str,
        trigger_values: Optional[TriggerValues] = None,
    ) -> Alert:
        doc = _new_doc(hive_id, alert_type, severity, message, trigger_values)
        key = (hive_id, doc["alertType"])
        with self._lock:
            existing = self._active.get(key)
            if existing is not None:
                raise ConflictError(hive_id, doc["alertType"], existing)
            alert_id = uuid4().hex
            doc["seq"] = next(self._seq)
            self._docs[alert_id] = doc
            self._active[key] = alert_id
            return self._alert(alert_id)

    def _resolve_locked(self, alert_id: str, fields: Dict[str, Any]) -> Alert:
        doc = self._docs[alert_id]
        doc.update(fields)
        self._active.pop((doc["hiveId"], doc["alertType"]), None)
        return self._alert(alert_id)

    def resolve(self, alert_id: str, resolved_by: str, resolution_notes: Optional[str] = None) -> Alert:
        with self._lock:
            doc = self._docs.get(alert_id)
            if doc is None:
                raise NotFoundError(f"alert {alert_id} not found")
            if doc["isResolved"]:
                raise AlreadyResolvedError(alert_id)
            return self._resolve_locked(alert_id, _resolution_fields(resolved_by, resolution_notes))

    def resolve_many(
        self,
        hive_id: Optional[str] = None,
        resolution_notes: Optional[str] = None,
        resolved_by: Optional[str] = None,
    ) -> List[Alert]:
        fields = _resolution_fields(resolved_by, resolution_notes)
        with self._lock:
            ids = [
                alert_id
                for (h, _), alert_id in self._active.items()
                if hive_id is None or h == hive_id
            ]
            return [self._resolve_locked(alert_id, dict(fields)) for alert_id in ids]

    def list(self, filters: AlertsQuery) -> Tuple[List[Alert], int]:
        q = _query_from_filters(filters)
        with self._lock:
            matched = [(i, d) for i, d in self._docs.items() if self._matches(d, q)]
            matched.sort(key=lambda pair: (pair[1]["createdAt"], pair[1]["seq"]), reverse=True)
            page = matched[filters.offset : filters.offset + filters.limit]
            return [_doc_to_alert(d, i) for i, d in page], len(matched)

    def count(self, query: Dict[str, Any]) -> int:
        with self._lock:
            return sum(1 for d in self._docs.values() if self._matches(d, query))
