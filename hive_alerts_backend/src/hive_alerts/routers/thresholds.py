from __future__ import annotations

from fastapi import APIRouter, HTTPException, Path, Request, status

from src.hive_alerts.errors import HiveAlertsError
from src.hive_alerts.routers.common import http_error
from src.hive_alerts.schemas.common import ErrorResponse
from src.hive_alerts.schemas.thresholds import (
    EffectiveThresholds,
    HiveThresholdIn,
    ThresholdProfile,
    ThresholdProfileIn,
    ThresholdProfileListResponse,
    ThresholdValues,
)
from src.hive_alerts.state import get_state

router = APIRouter(prefix="/api/thresholds", tags=["Thresholds"])


@router.get(
    "",
    response_model=ThresholdProfileListResponse,
    summary="List threshold profiles",
    description="List the global profile (if set) and every hive override.",
    operation_id="list_threshold_profiles",
)
def list_profiles(request: Request) -> ThresholdProfileListResponse:
    """List threshold profiles."""
    items = get_state(request.app).thresholds.list_profiles()
    return ThresholdProfileListResponse(items=items, total=len(items))


@router.post(
    "",
    response_model=ThresholdProfile,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Create or update a hive override",
    description="Save the override for payload.hive_id; saving again updates the same profile.",
    operation_id="upsert_hive_thresholds",
)
def upsert_hive(request: Request, payload: HiveThresholdIn) -> ThresholdProfile:
    """Create or update a hive-level override."""
    values = ThresholdValues(**payload.model_dump(exclude={"hive_id"}))
    try:
        return get_state(request.app).thresholds.upsert_hive(payload.hive_id, values)
    except HiveAlertsError as exc:
        raise http_error(exc) from exc


@router.get(
    "/global",
    response_model=ThresholdProfile,
    responses={404: {"model": ErrorResponse}},
    summary="Get global thresholds",
    operation_id="get_global_thresholds",
)
def get_global(request: Request) -> ThresholdProfile:
    """Return the global profile; 404 when only built-in defaults apply."""
    profile = get_state(request.app).thresholds.get_global()
    if not profile:
        raise HTTPException(status_code=404, detail="global thresholds not set")
    return profile


@router.put(
    "/global",
    response_model=ThresholdProfile,
    responses={400: {"model": ErrorResponse}},
    summary="Set global thresholds",
    operation_id="set_global_thresholds",
)
def set_global(request: Request, payload: ThresholdProfileIn) -> ThresholdProfile:
    """Create or update the global profile."""
    try:
        return get_state(request.app).thresholds.set_global(payload)
    except HiveAlertsError as exc:
        raise http_error(exc) from exc


@router.get(
    "/effective/{hive_id}",
    response_model=EffectiveThresholds,
    summary="Effective thresholds for a hive",
    description="Hive override if present, else the global profile, else built-in defaults.",
    operation_id="get_effective_thresholds",
)
def get_effective(request: Request, hive_id: str = Path(..., description="Hive id.")) -> EffectiveThresholds:
    """Resolve the thresholds that apply to a hive."""
    return get_state(request.app).resolver.describe(hive_id)


@router.delete(
    "/hives/{hive_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a hive override",
    operation_id="delete_hive_thresholds",
)
def delete_hive(request: Request, hive_id: str = Path(..., description="Hive id.")) -> None:
    """Remove a hive's override so it falls back to the global profile."""
    if not get_state(request.app).thresholds.delete_hive(hive_id):
        raise HTTPException(status_code=404, detail="hive override not found")
    return None


@router.get(
    "/{profile_id}",
    response_model=ThresholdProfile,
    responses={404: {"model": ErrorResponse}},
    summary="Get threshold profile",
    operation_id="get_threshold_profile",
)
def get_profile(request: Request, profile_id: str = Path(..., description="Profile id.")) -> ThresholdProfile:
    """Get a profile by id."""
    profile = get_state(request.app).thresholds.get(profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="threshold profile not found")
    return profile


@router.put(
    "/{profile_id}",
    response_model=ThresholdProfile,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update threshold profile",
    description="Replace the limits of an existing profile; its scope is kept.",
    operation_id="put_threshold_profile",
)
def put_profile(
    request: Request,
    payload: ThresholdProfileIn,
    profile_id: str = Path(..., description="Profile id."),
) -> ThresholdProfile:
    """Replace a profile's limits."""
    try:
        return get_state(request.app).thresholds.update(profile_id, payload)
    except HiveAlertsError as exc:
        raise http_error(exc) from exc


@router.delete(
    "/{profile_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete threshold profile",
    operation_id="delete_threshold_profile",
)
def delete_profile(request: Request, profile_id: str = Path(..., description="Profile id.")) -> None:
    """Delete a profile by id."""
    if not get_state(request.app).thresholds.delete(profile_id):
        raise HTTPException(status_code=404, detail="threshold profile not found")
    return None
