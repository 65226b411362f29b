from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from src.hive_alerts.schemas.alerts import Alert, AlertType, TriggerValues
from src.hive_alerts.schemas.common import Severity, utc_now


class SensorSample(BaseModel):
    """
    One reading from a hive's device. Every metric is optional since not every device
    reports every metric.

    `weight_change` is the delta since the previous sample; `last_inspection_at` is
    supplied by the hive directory, not the device.
    """

    temperature: Optional[float] = Field(default=None, description="Temperature (°C).")
    humidity: Optional[float] = Field(default=None, description="Relative humidity (%).")
    weight: Optional[float] = Field(default=None, description="Absolute hive weight (kg).")
    weight_change: Optional[float] = Field(default=None, description="Weight delta since the previous sample (kg).")
    sound_level: Optional[float] = Field(default=None, description="Sound level (dB).")
    battery_level: Optional[float] = Field(default=None, description="Device battery (%).")
    timestamp: datetime = Field(default_factory=utc_now, description="When the sample was taken (UTC).")
    last_inspection_at: Optional[datetime] = Field(default=None, description="Last inspection of the hive (UTC).")


class Finding(BaseModel):
    """One breached metric of a sample."""

    metric: str = Field(..., description="Metric name, e.g. 'temperature'.")
    alert_type: AlertType = Field(..., description="Alert category the breach maps to.")
    severity: Severity = Field(..., description="Severity from the policy table.")
    message: str = Field(..., description="Human-readable description of the breach.")
    trigger_values: TriggerValues = Field(default_factory=dict, description="Measurement and bound(s).")


class HiveFailure(BaseModel):
    """A hive that could not be evaluated during a sweep."""

    hive_id: str
    error: str
    error_type: str


class EvaluationResult(BaseModel):
    """Per-sweep summary; returned to the caller, never stored."""

    hives_examined: int = Field(0, ge=0, description="Hives considered by the sweep.")
    hives_without_sample: List[str] = Field(default_factory=list, description="Hives with no sample to evaluate.")
    alerts_created: int = Field(0, ge=0, description="Alerts newly created by the sweep.")
    created_alert_ids: List[str] = Field(default_factory=list, description="Ids of the newly created alerts.")
    failures: List[HiveFailure] = Field(default_factory=list, description="Per-hive evaluation errors.")
    evaluated_at: datetime = Field(default_factory=utc_now, description="UTC timestamp of the sweep.")


class EvaluateResponse(BaseModel):
    """Alerts created by evaluating a single posted sample."""

    hive_id: str
    created: List[Alert] = Field(default_factory=list)


class CheckTaskStatus(str, Enum):
    queued = "Queued"
    running = "Running"
    completed = "Completed"
    failed = "Failed"


class CheckTask(BaseModel):
    """A sweep handed to the background; Queued -> Running -> Completed | Failed."""

    id: str = Field(..., description="Opaque task handle.")
    hive_id: Optional[str] = Field(default=None, description="Hive to check; null sweeps every hive.")
    status: CheckTaskStatus = Field(CheckTaskStatus.queued)
    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result: Optional[EvaluationResult] = None
    error: Optional[str] = None


class ScheduleCheckResponse(BaseModel):
    """Handle returned by schedule_check."""

    task_id: str
    status: CheckTaskStatus
