from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from src.hive_alerts.config import sanitize_mongo_uri
from src.hive_alerts.schemas.common import HealthResponse, utc_now
from src.hive_alerts.state import get_state

router = APIRouter(tags=["Health"])


class StorageDiagnosticsResponse(BaseModel):
    """Response model for storage backend diagnostics."""

    backend: str = Field(..., description="Configured storage backend (mongo|memory).")
    ok: bool = Field(..., description="Whether the storage backend is reachable.")
    mongo_uri_source: str = Field(..., description="Which source provided the MongoDB URI.")
    mongo_uri_sanitized: Optional[str] = Field(default=None, description="MongoDB URI with credentials masked.")
    alert_check_enabled: bool = Field(..., description="Whether the periodic sweep is enabled.")
    alert_check_interval_sec: int = Field(..., description="Seconds between periodic sweeps.")
    timestamp: str = Field(..., description="UTC timestamp when the check was performed (ISO string).")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Optional debug metadata.")


@router.get(
    "/",
    response_model=HealthResponse,
    summary="Health check",
    description="Basic service liveness check used by deployment and the frontend.",
    operation_id="health_check",
)
def health_check() -> HealthResponse:
    """Return service liveness status."""
    return HealthResponse(status="ok", message="Healthy", timestamp=utc_now())


@router.get(
    "/api/health/storage",
    response_model=StorageDiagnosticsResponse,
    summary="Storage diagnostics",
    description="Reports the storage backend, pings MongoDB when configured, and masks credentials.",
    operation_id="storage_diagnostics",
)
def storage_diagnostics(request: Request) -> StorageDiagnosticsResponse:
    """Storage backend connectivity and sweep configuration."""
    state = get_state(request.app)
    cfg = state.config
    ok = state.mongo.ping() if state.mongo is not None else True
    return StorageDiagnosticsResponse(
        backend=cfg.storage_backend,
        ok=ok,
        mongo_uri_source=cfg.mongo_uri_source,
        mongo_uri_sanitized=sanitize_mongo_uri(cfg.mongo_uri) if cfg.mongo_uri else None,
        alert_check_enabled=cfg.alert_check_enabled,
        alert_check_interval_sec=cfg.alert_check_interval_sec,
        timestamp=utc_now().isoformat(),
    )
