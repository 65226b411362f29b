from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from src.hive_alerts.schemas.checks import EvaluationResult


class HiveAlertsError(Exception):
    """Base exception for alert engine errors."""


class ConfigurationError(HiveAlertsError):
    """Raised when a threshold profile or engine setting is malformed (e.g. min >= max)."""


class ConflictError(HiveAlertsError):
    """Raised when an unresolved alert already exists for the same (hive_id, alert_type)."""

    def __init__(self, hive_id: str, alert_type: str, existing_id: Optional[str] = None):
        self.hive_id = hive_id
        self.alert_type = alert_type
        self.existing_id = existing_id
        super().__init__(f"active {alert_type} alert already exists for hive {hive_id}")


class NotFoundError(HiveAlertsError):
    """Raised when an alert, profile or task id is unknown."""


class AlreadyResolvedError(HiveAlertsError):
    """Raised when resolving an alert that is already resolved."""

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"alert {alert_id} is already resolved")


class PartialSweepFailure(HiveAlertsError):
    """
    Raised when every hive in a batch sweep failed.

    The per-hive failures are available on `result.failures`. A sweep where only some
    hives failed does not raise; it completes with the failures attached to its result.
    """

    def __init__(self, result: "EvaluationResult"):
        self.result = result
        super().__init__(f"all {len(result.failures)} hive evaluations failed")
