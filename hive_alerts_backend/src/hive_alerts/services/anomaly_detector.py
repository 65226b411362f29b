from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from src.hive_alerts.config import BackendConfig, validate_severity_bands
from src.hive_alerts.schemas.alerts import AlertType
from src.hive_alerts.schemas.checks import Finding, SensorSample
from src.hive_alerts.schemas.common import Severity, as_utc
from src.hive_alerts.schemas.thresholds import ThresholdProfile


@dataclass(frozen=True)
class SeverityPolicy:
    """
    Maps a deviation ratio to a severity.

    The ratio measures how far past its bound a value is, normalized per metric kind:
    range metrics by the width of the range, scalar limits by the limit itself.
    Bands are checked from the most severe down; below the lowest band is Low.
    """

    bands: Tuple[Tuple[float, Severity], ...] = (
        (0.50, Severity.critical),
        (0.25, Severity.high),
        (0.10, Severity.medium),
    )
    floor: Severity = Severity.low

    @classmethod
    def from_config(cls, config: BackendConfig) -> "SeverityPolicy":
        return cls.from_ratios(config.severity_band_medium, config.severity_band_high, config.severity_band_critical)

    @classmethod
    def from_ratios(cls, medium: float, high: float, critical: float) -> "SeverityPolicy":
        validate_severity_bands(medium, high, critical)
        return cls(bands=((critical, Severity.critical), (high, Severity.high), (medium, Severity.medium)))

    def classify(self, ratio: float) -> Severity:
        for cutoff, severity in self.bands:
            if ratio >= cutoff:
                return severity
        return self.floor


def _ratio(excess: float, reference: float) -> float:
    if reference > 0:
        return excess / reference
    # A zero limit gives no scale; any breach is maximal.
    return math.inf if excess > 0 else 0.0


def _with_deviation(values: dict, ratio: float) -> dict:
    # Infinite ratios (zero limits) are not JSON-safe; leave them out of the payload.
    if math.isfinite(ratio):
        values["deviation"] = round(ratio, 4)
    return values


@dataclass(frozen=True)
class _RangeRule:
    metric: str
    alert_type: AlertType
    label: str
    unit: str
    min_field: str
    max_field: str

    def check(self, value: float, profile: ThresholdProfile) -> Optional[Tuple[float, str, dict]]:
        lo, hi = getattr(profile, self.min_field), getattr(profile, self.max_field)
        if lo <= value <= hi:
            return None
        width = hi - lo
        if value < lo:
            excess, text = lo - value, f"{self.label} {value:g}{self.unit} is below minimum {lo:g}{self.unit}"
        else:
            excess, text = value - hi, f"{self.label} {value:g}{self.unit} is above maximum {hi:g}{self.unit}"
        return _ratio(excess, width), text, {"min": lo, "max": hi}


@dataclass(frozen=True)
class _LimitRule:
    """Breach when value >= limit (or value <= limit for `at_or_below`)."""

    metric: str
    alert_type: AlertType
    label: str
    unit: str
    limit_field: str
    at_or_below: bool = False
    absolute: bool = False

    def check(self, value: float, profile: ThresholdProfile) -> Optional[Tuple[float, str, dict]]:
        limit = float(getattr(profile, self.limit_field))
        measured = abs(value) if self.absolute else value
        if self.at_or_below:
            if measured > limit:
                return None
            excess, text = limit - measured, f"{self.label} {value:g}{self.unit} is at or below {limit:g}{self.unit}"
        else:
            if measured < limit:
                return None
            excess, text = measured - limit, f"{self.label} {value:g}{self.unit} reached limit {limit:g}{self.unit}"
        return _ratio(excess, limit), text, {"threshold": limit}


METRIC_RULES = (
    _RangeRule("temperature", AlertType.temperature, "Temperature", "°C", "temperature_min", "temperature_max"),
    _RangeRule("humidity", AlertType.humidity, "Humidity", "%", "humidity_min", "humidity_max"),
    _LimitRule("weight_change", AlertType.activity, "Weight change", " kg", "weight_change_threshold", absolute=True),
    _LimitRule("sound_level", AlertType.health, "Sound level", " dB", "sound_level_threshold"),
    _LimitRule("battery_level", AlertType.battery, "Battery", "%", "battery_warning_level", at_or_below=True),
)


@dataclass
class AnomalyDetector:
    """Pure function of (sample, profile): one finding per breached metric."""

    policy: SeverityPolicy = field(default_factory=SeverityPolicy)

    # PUBLIC_INTERFACE
    def detect(self, sample: SensorSample, profile: ThresholdProfile) -> List[Finding]:
        """Compare each reported metric with its bound(s) and grade every breach."""
        findings: List[Finding] = []
        for rule in METRIC_RULES:
            value = getattr(sample, rule.metric)
            if value is None:
                continue
            breach = rule.check(float(value), profile)
            if breach is None:
                continue
            ratio, message, bounds = breach
            findings.append(
                Finding(
                    metric=rule.metric,
                    alert_type=rule.alert_type,
                    severity=self.policy.classify(ratio),
                    message=message,
                    trigger_values=_with_deviation({"metric": rule.metric, "value": float(value), **bounds}, ratio),
                )
            )

        overdue = self._inspection_finding(sample, profile)
        if overdue is not None:
            findings.append(overdue)
        return findings

    def _inspection_finding(self, sample: SensorSample, profile: ThresholdProfile) -> Optional[Finding]:
        if sample.last_inspection_at is None or profile.inspection_reminder_days <= 0:
            return None
        elapsed = as_utc(sample.timestamp) - as_utc(sample.last_inspection_at)
        days = elapsed.total_seconds() / 86400.0
        reminder = float(profile.inspection_reminder_days)
        if days < reminder:
            return None
        ratio = _ratio(days - reminder, reminder)
        return Finding(
            metric="inspection",
            alert_type=AlertType.maintenance,
            severity=self.policy.classify(ratio),
            message=f"Inspection overdue: {int(days)} days since last inspection (reminder every {int(reminder)} days)",
            trigger_values=_with_deviation(
                {"metric": "inspection", "days_since_inspection": round(days, 2), "threshold": int(reminder)}, ratio
            ),
        )
