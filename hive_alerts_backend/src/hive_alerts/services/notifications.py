from __future__ import annotations

import logging
from typing import List, Protocol

from src.hive_alerts.schemas.alerts import Alert

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    """
    Receives alert lifecycle events. Delivery (push/email/SMS) belongs to the dispatcher;
    the engine hands events over and does not wait on delivery.
    """

    def alert_created(self, alert: Alert) -> None:
        ...

    def alert_resolved(self, alert: Alert) -> None:
        ...


class LoggingDispatcher:
    """Default dispatcher: records events in the service log."""

    def alert_created(self, alert: Alert) -> None:
        logger.info(
            "Alert created id=%s hiveId=%s type=%s severity=%s",
            alert.id,
            alert.hive_id,
            alert.alert_type.value,
            alert.severity.value,
        )

    def alert_resolved(self, alert: Alert) -> None:
        logger.info("Alert resolved id=%s hiveId=%s by=%s", alert.id, alert.hive_id, alert.resolved_by)


class FanoutDispatcher:
    """Forwards each event to several dispatchers; one failing does not stop the others."""

    def __init__(self, dispatchers: List[NotificationDispatcher]):
        self._dispatchers = list(dispatchers)

    def alert_created(self, alert: Alert) -> None:
        for d in self._dispatchers:
            try:
                d.alert_created(alert)
            except Exception:
                logger.exception("Dispatcher %s failed on alert_created id=%s", type(d).__name__, alert.id)

    def alert_resolved(self, alert: Alert) -> None:
        for d in self._dispatchers:
            try:
                d.alert_resolved(alert)
            except Exception:
                logger.exception("Dispatcher %s failed on alert_resolved id=%s", type(d).__name__, alert.id)
