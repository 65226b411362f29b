from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Path, Query, Request, status

from src.hive_alerts.errors import HiveAlertsError
from src.hive_alerts.routers.common import http_error
from src.hive_alerts.schemas.checks import (
    CheckTask,
    CheckTaskStatus,
    EvaluateResponse,
    EvaluationResult,
    ScheduleCheckResponse,
    SensorSample,
)
from src.hive_alerts.schemas.common import ErrorResponse
from src.hive_alerts.state import get_state

router = APIRouter(prefix="/api/checks", tags=["Checks"])


@router.post(
    "/run",
    response_model=EvaluationResult,
    responses={502: {"model": ErrorResponse}},
    summary="Run alert check now",
    description="Synchronous sweep over one hive (hive_id) or every hive in the directory.",
    operation_id="run_alert_check",
)
def run_check(
    request: Request,
    hive_id: Optional[str] = Query(default=None, description="Optional hive to check."),
) -> EvaluationResult:
    """Run a sweep and return its summary."""
    try:
        return get_state(request.app).scheduler.check_now(hive_id)
    except HiveAlertsError as exc:
        raise http_error(exc) from exc


@router.post(
    "/hives/{hive_id}/evaluate",
    response_model=EvaluateResponse,
    summary="Evaluate a sample",
    description="Evaluate a posted sensor sample for a hive; returns the alerts newly created.",
    operation_id="evaluate_hive_sample",
)
def evaluate_sample(
    request: Request,
    sample: SensorSample,
    hive_id: str = Path(..., description="Hive id."),
) -> EvaluateResponse:
    """Evaluate one sample."""
    created = get_state(request.app).manager.evaluate(hive_id, sample)
    return EvaluateResponse(hive_id=hive_id, created=created)


@router.post(
    "/schedule",
    response_model=ScheduleCheckResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Schedule alert check",
    description="Queue a sweep in the background and return its task id immediately.",
    operation_id="schedule_alert_check",
)
async def schedule_check(
    request: Request,
    hive_id: Optional[str] = Query(default=None, description="Optional hive to check."),
) -> ScheduleCheckResponse:
    """Schedule a sweep."""
    task_id = await get_state(request.app).scheduler.schedule_check(hive_id)
    return ScheduleCheckResponse(task_id=task_id, status=CheckTaskStatus.queued)


@router.get(
    "/tasks/{task_id}",
    response_model=CheckTask,
    responses={404: {"model": ErrorResponse}},
    summary="Get scheduled check",
    operation_id="get_check_task",
)
def get_task(request: Request, task_id: str = Path(..., description="Task id.")) -> CheckTask:
    """Status of a scheduled sweep."""
    task = get_state(request.app).scheduler.get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="check task not found")
    return task
