from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Alert severity levels, totally ordered Low < Medium < High < Critical."""

    low = "Low"
    medium = "Medium"
    high = "High"
    critical = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.low: 0, Severity.medium: 1, Severity.high: 2, Severity.critical: 3}


class HealthResponse(BaseModel):
    """Response model for health endpoints."""

    status: str = Field(..., description="High-level health status string (e.g., 'ok').")
    message: str = Field(..., description="Human-readable status message.")
    timestamp: datetime = Field(..., description="UTC timestamp at time of response.")


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    detail: str = Field(..., description="Human-readable error details.")
    code: Optional[str] = Field(default=None, description="Optional machine-readable error code.")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Optional metadata for debugging.")


# PUBLIC_INTERFACE
def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by pymongo by default) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
