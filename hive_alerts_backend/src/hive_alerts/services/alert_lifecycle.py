from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence

from src.hive_alerts.errors import ConflictError, PartialSweepFailure
from src.hive_alerts.schemas.alerts import Alert, AlertCreate
from src.hive_alerts.schemas.checks import EvaluationResult, HiveFailure, SensorSample
from src.hive_alerts.services.alert_ledger import AlertLedger
from src.hive_alerts.services.anomaly_detector import AnomalyDetector
from src.hive_alerts.services.notifications import LoggingDispatcher, NotificationDispatcher
from src.hive_alerts.services.threshold_resolver import ThresholdResolver

logger = logging.getLogger(__name__)


class AlertLifecycleManager:
    """
    Detection -> dedup -> creation -> resolution.

    The only component that writes to the ledger. Evaluating the same still-breaching sample
    any number of times leaves exactly one unresolved alert per (hive, alert type): an existing
    active alert suppresses the finding, and a create that loses a race against another
    evaluation (ConflictError from the ledger) is treated the same way.
    """

    def __init__(
        self,
        resolver: ThresholdResolver,
        detector: AnomalyDetector,
        ledger: AlertLedger,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.resolver = resolver
        self.detector = detector
        self.ledger = ledger
        self.dispatcher = dispatcher or LoggingDispatcher()

    def _notify_created(self, alert: Alert) -> None:
        try:
            self.dispatcher.alert_created(alert)
        except Exception:
            logger.exception("Notification dispatch failed for created alert id=%s", alert.id)

    def _notify_resolved(self, alert: Alert) -> None:
        try:
            self.dispatcher.alert_resolved(alert)
        except Exception:
            logger.exception("Notification dispatch failed for resolved alert id=%s", alert.id)

    # PUBLIC_INTERFACE
    def evaluate(self, hive_id: str, sample: SensorSample) -> List[Alert]:
        """Evaluate one sample for one hive; returns only the alerts newly created."""
        profile = self.resolver.resolve(hive_id)
        findings = self.detector.detect(sample, profile)

        created: List[Alert] = []
        for finding in findings:
            active = self.ledger.find_active(hive_id, finding.alert_type)
            if active is not None:
                logger.debug(
                    "Suppressed %s finding for hiveId=%s; active alert id=%s",
                    finding.alert_type.value,
                    hive_id,
                    active.id,
                )
                continue
            try:
                alert = self.ledger.create(
                    hive_id,
                    finding.alert_type,
                    finding.severity,
                    finding.message,
                    finding.trigger_values,
                )
            except ConflictError as exc:
                logger.warning(
                    "Concurrent %s alert for hiveId=%s already created (id=%s); suppressed",
                    exc.alert_type,
                    hive_id,
                    exc.existing_id,
                )
                continue
            created.append(alert)
            self._notify_created(alert)
        return created

    # PUBLIC_INTERFACE
    def evaluate_all(
        self,
        hive_samples: Mapping[str, Optional[SensorSample]],
        fetch_failures: Sequence[HiveFailure] = (),
    ) -> EvaluationResult:
        """
        Evaluate a batch of hives. A failing hive is recorded and the sweep moves on.

        `fetch_failures` are hives whose sample could not be loaded; they count as
        attempted and failed. Raises PartialSweepFailure only when every hive that had
        (or should have had) a sample failed.
        """
        result = EvaluationResult(
            hives_examined=len(hive_samples) + len(fetch_failures),
            failures=list(fetch_failures),
        )
        attempted = len(fetch_failures)
        for hive_id, sample in hive_samples.items():
            if sample is None:
                result.hives_without_sample.append(hive_id)
                continue
            attempted += 1
            try:
                created = self.evaluate(hive_id, sample)
            except Exception as exc:
                logger.exception("Alert evaluation failed for hiveId=%s", hive_id)
                result.failures.append(HiveFailure(hive_id=hive_id, error=str(exc), error_type=type(exc).__name__))
                continue
            result.alerts_created += len(created)
            result.created_alert_ids.extend(a.id for a in created)

        logger.info(
            "Sweep finished hives=%s created=%s failures=%s",
            result.hives_examined,
            result.alerts_created,
            len(result.failures),
        )
        if attempted and len(result.failures) == attempted:
            raise PartialSweepFailure(result)
        return result

    # PUBLIC_INTERFACE
    def raise_alert(self, payload: AlertCreate) -> Alert:
        """Record a manually reported alert. A duplicate active alert raises ConflictError."""
        alert = self.ledger.create(
            payload.hive_id,
            payload.alert_type,
            payload.severity,
            payload.message.strip(),
            payload.trigger_values,
        )
        self._notify_created(alert)
        return alert

    # PUBLIC_INTERFACE
    def resolve(self, alert_id: str, resolved_by: str, resolution_notes: Optional[str] = None) -> Alert:
        """Resolve one alert. NotFoundError / AlreadyResolvedError propagate to the caller."""
        alert = self.ledger.resolve(alert_id, resolved_by, resolution_notes)
        self._notify_resolved(alert)
        return alert

    # PUBLIC_INTERFACE
    def resolve_all(
        self,
        hive_id: Optional[str] = None,
        resolution_notes: Optional[str] = None,
        resolved_by: Optional[str] = None,
    ) -> int:
        """Bulk-resolve unresolved alerts, optionally for one hive; returns the count."""
        resolved = self.ledger.resolve_many(hive_id, resolution_notes, resolved_by)
        for alert in resolved:
            self._notify_resolved(alert)
        return len(resolved)
