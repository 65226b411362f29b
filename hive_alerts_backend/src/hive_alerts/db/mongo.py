from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


DEFAULT_DB_NAME = "hivealerts"


@dataclass(frozen=True)
class MongoCollections:
    """Convenience wrapper for app collections."""

    threshold_profiles: Collection
    alerts: Collection

    # Read-only inputs written by the ingestion side of the platform.
    hives: Collection
    sensor_samples: Collection


class MongoManager:
    """
    MongoDB connection manager.

    Maintains one MongoClient for the app's storage DB. MongoClient is thread-safe and pools
    connections internally, so the same manager is shared by request handlers and sweeps.
    """

    def __init__(self, mongo_uri: str, db_name: str = DEFAULT_DB_NAME):
        self._mongo_uri = mongo_uri
        self._db_name = db_name
        self._client: Optional[MongoClient] = None
        self._lock = RLock()

    def connect(self) -> None:
        """Initialize the Mongo client if needed."""
        with self._lock:
            if self._client is not None:
                return
            # tz_aware so stored datetimes round-trip as UTC-aware values.
            self._client = MongoClient(self._mongo_uri, connect=True, tz_aware=True)

    # PUBLIC_INTERFACE
    def ping(self, timeout_ms: int = 1500) -> bool:
        """Ping the configured MongoDB to validate connectivity."""
        try:
            if self._client is None:
                self.connect()
            assert self._client is not None
            self._client.admin.command("ping", maxTimeMS=int(max(250, timeout_ms)))
            return True
        except PyMongoError:
            logger.exception("Mongo ping failed (PyMongoError)")
            return False
        except Exception:
            logger.exception("Mongo ping failed (unexpected)")
            return False

    def close(self) -> None:
        """Close the Mongo client."""
        with self._lock:
            if self._client is not None:
                try:
                    self._client.close()
                except Exception:
                    logger.exception("Error closing MongoClient")
                self._client = None

    def db(self) -> Database:
        """Return the app database handle."""
        if self._client is None:
            self.connect()
        assert self._client is not None
        return self._client[self._db_name]

    def collections(self) -> MongoCollections:
        """Return app collections."""
        db = self.db()
        return MongoCollections(
            threshold_profiles=db["threshold_profiles"],
            alerts=db["alerts"],
            hives=db["hives"],
            sensor_samples=db["sensor_samples"],
        )

    def init_indexes(self) -> None:
        """
        Create required indexes (idempotent).

        The two unique indexes carry the engine's invariants:
        - one profile per scope (a single global profile, one override per hive)
        - one unresolved alert per (hiveId, alertType); resolved alerts are excluded by the
          partial filter so history can hold any number of them
        """
        cols = self.collections()

        # ---- Threshold profiles ----
        cols.threshold_profiles.create_index([("scopeKey", ASCENDING)], unique=True, name="uniq_threshold_scope")

        # ---- Alerts ----
        cols.alerts.create_index(
            [("hiveId", ASCENDING), ("alertType", ASCENDING)],
            unique=True,
            partialFilterExpression={"isResolved": False},
            name="uniq_active_alert_hive_type",
        )
        cols.alerts.create_index([("createdAt", DESCENDING)], name="idx_alerts_createdAt_desc")
        cols.alerts.create_index(
            [("hiveId", ASCENDING), ("createdAt", DESCENDING)], name="idx_alerts_hive_createdAt_desc"
        )
        cols.alerts.create_index([("isResolved", ASCENDING)], name="idx_alerts_isResolved")

        # ---- Hives / samples ----
        cols.hives.create_index([("id", ASCENDING)], unique=True, name="idx_hives_id")
        cols.sensor_samples.create_index([("hiveId", ASCENDING), ("ts", DESCENDING)], name="idx_samples_hive_ts")
