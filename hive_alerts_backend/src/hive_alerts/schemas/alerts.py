from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from src.hive_alerts.schemas.common import Severity

TriggerValues = Dict[str, Union[float, int, str]]


class AlertType(str, Enum):
    """Fixed enumeration of alert categories."""

    temperature = "Temperature"
    humidity = "Humidity"
    activity = "Activity"
    battery = "Battery"
    health = "Health"
    security = "Security"
    maintenance = "Maintenance"
    other = "Other"


class Alert(BaseModel):
    """An alert raised for a hive; unresolved until an explicit resolve action."""

    id: str = Field(..., description="Alert id (opaque string).")
    hive_id: str = Field(..., description="Hive the alert belongs to.")
    alert_type: AlertType = Field(..., description="Alert category.")
    severity: Severity = Field(..., description="Low < Medium < High < Critical.")
    message: str = Field(..., description="Human-readable alert message.")
    trigger_values: Optional[TriggerValues] = Field(
        default=None, description="Measurement payload that caused the alert."
    )
    created_at: datetime = Field(..., description="UTC timestamp when the alert was created.")

    is_resolved: bool = Field(False, description="Whether the alert has been resolved.")
    resolved_at: Optional[datetime] = Field(default=None, description="UTC timestamp of resolution.")
    resolved_by: Optional[str] = Field(default=None, description="Identifier of the user who resolved it.")
    resolution_notes: Optional[str] = Field(default=None, description="Free-text resolution notes.")


class AlertCreate(BaseModel):
    """Request body for a manually reported alert."""

    hive_id: str = Field(..., min_length=1, description="Hive the alert belongs to.")
    alert_type: AlertType = Field(..., description="Alert category.")
    severity: Severity = Field(Severity.medium, description="Alert severity.")
    message: str = Field(..., min_length=1, description="Human-readable alert message.")
    trigger_values: Optional[TriggerValues] = Field(default=None, description="Optional measurement payload.")


class AlertResolve(BaseModel):
    """Request body for resolving a single alert."""

    resolved_by: str = Field(..., min_length=1, description="Identifier of the acting user.")
    resolution_notes: Optional[str] = Field(default=None, description="Optional resolution notes.")


class AlertResolveAll(BaseModel):
    """Request body for bulk-resolving unresolved alerts."""

    hive_id: Optional[str] = Field(default=None, description="Restrict to one hive; null resolves across all hives.")
    resolved_by: Optional[str] = Field(default=None, description="Identifier of the acting user.")
    resolution_notes: Optional[str] = Field(default=None, description="Optional resolution notes.")


class AlertResolveAllResponse(BaseModel):
    """Result of a bulk resolve."""

    resolved: int = Field(..., ge=0, description="Number of alerts resolved.")


class AlertsQuery(BaseModel):
    """Filter/pagination model for listing alerts."""

    hive_id: Optional[str] = Field(default=None, description="Filter by hive.")
    severity: Optional[Severity] = Field(default=None, description="Filter by severity.")
    alert_type: Optional[AlertType] = Field(default=None, description="Filter by alert type.")
    is_resolved: Optional[bool] = Field(default=None, description="Filter resolved (true) or active (false) alerts.")
    limit: int = Field(100, ge=1, le=500, description="Max number of alerts to return.")
    offset: int = Field(0, ge=0, le=100000, description="Offset for pagination (simple skip).")


class AlertListResponse(BaseModel):
    """Envelope for listing alerts."""

    items: List[Alert] = Field(..., description="Alerts, newest first.")
    total: int = Field(..., ge=0, description="Total count of alerts matching the filters.")


class AlertStats(BaseModel):
    """Counts over the alert ledger."""

    total: int = Field(..., ge=0)
    active: int = Field(..., ge=0)
    resolved: int = Field(..., ge=0)
    active_by_severity: Dict[str, int] = Field(default_factory=dict, description="Active alerts per severity.")
    active_by_type: Dict[str, int] = Field(default_factory=dict, description="Active alerts per alert type.")
