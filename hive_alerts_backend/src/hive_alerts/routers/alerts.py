from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Path, Query, Request, status

from src.hive_alerts.errors import HiveAlertsError
from src.hive_alerts.routers.common import http_error
from src.hive_alerts.schemas.alerts import (
    Alert,
    AlertCreate,
    AlertListResponse,
    AlertResolve,
    AlertResolveAll,
    AlertResolveAllResponse,
    AlertsQuery,
    AlertStats,
    AlertType,
)
from src.hive_alerts.schemas.common import ErrorResponse, Severity
from src.hive_alerts.state import get_state

router = APIRouter(prefix="/api/alerts", tags=["Alerts"])


@router.get(
    "",
    response_model=AlertListResponse,
    summary="List alerts",
    description="List alerts filtered by hive, severity, type and resolved flag. Sorted by created_at desc.",
    operation_id="list_alerts",
)
def list_alerts(
    request: Request,
    hive_id: Optional[str] = Query(default=None),
    severity: Optional[Severity] = Query(default=None),
    alert_type: Optional[AlertType] = Query(default=None),
    is_resolved: Optional[bool] = Query(default=None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0, le=100000),
) -> AlertListResponse:
    """List alerts with filters and pagination."""
    filters = AlertsQuery(
        hive_id=hive_id,
        severity=severity,
        alert_type=alert_type,
        is_resolved=is_resolved,
        limit=limit,
        offset=offset,
    )
    items, total = get_state(request.app).ledger.list(filters)
    return AlertListResponse(items=items, total=total)


@router.post(
    "",
    response_model=Alert,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Report an alert",
    description="Create a manually reported alert. Fails with 409 if the hive already has an active alert of that type.",
    operation_id="create_alert",
)
def create_alert(request: Request, payload: AlertCreate) -> Alert:
    """Create a manual alert."""
    if not payload.message.strip():
        raise HTTPException(status_code=400, detail="message must not be empty")
    try:
        return get_state(request.app).manager.raise_alert(payload)
    except HiveAlertsError as exc:
        raise http_error(exc) from exc


@router.get(
    "/active",
    response_model=AlertListResponse,
    summary="List active alerts",
    operation_id="list_active_alerts",
)
def list_active(
    request: Request,
    hive_id: Optional[str] = Query(default=None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0, le=100000),
) -> AlertListResponse:
    """Unresolved alerts, newest first."""
    filters = AlertsQuery(hive_id=hive_id, is_resolved=False, limit=limit, offset=offset)
    items, total = get_state(request.app).ledger.list(filters)
    return AlertListResponse(items=items, total=total)


@router.get(
    "/stats",
    response_model=AlertStats,
    summary="Alert statistics",
    operation_id="alert_stats",
)
def alert_stats(request: Request) -> AlertStats:
    """Totals and active counts per severity/type."""
    return get_state(request.app).ledger.stats()


@router.post(
    "/resolve-all",
    response_model=AlertResolveAllResponse,
    summary="Resolve all active alerts",
    description="Bulk-resolve unresolved alerts, optionally for a single hive.",
    operation_id="resolve_all_alerts",
)
def resolve_all(request: Request, payload: AlertResolveAll) -> AlertResolveAllResponse:
    """Bulk resolve."""
    resolved = get_state(request.app).manager.resolve_all(
        hive_id=payload.hive_id,
        resolution_notes=payload.resolution_notes,
        resolved_by=payload.resolved_by,
    )
    return AlertResolveAllResponse(resolved=resolved)


@router.get(
    "/{alert_id}",
    response_model=Alert,
    responses={404: {"model": ErrorResponse}},
    summary="Get alert",
    operation_id="get_alert",
)
def get_alert(request: Request, alert_id: str = Path(..., description="Alert id.")) -> Alert:
    """Get an alert by id."""
    alert = get_state(request.app).ledger.get(alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="alert not found")
    return alert


@router.post(
    "/{alert_id}/resolve",
    response_model=Alert,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Resolve alert",
    description="Resolve an active alert. Resolving an already-resolved alert returns 409.",
    operation_id="resolve_alert",
)
def resolve_alert(
    request: Request,
    payload: AlertResolve,
    alert_id: str = Path(..., description="Alert id."),
) -> Alert:
    """Resolve a single alert."""
    try:
        return get_state(request.app).manager.resolve(alert_id, payload.resolved_by, payload.resolution_notes)
    except HiveAlertsError as exc:
        raise http_error(exc) from exc
