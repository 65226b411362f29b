from __future__ import annotations

from fastapi import HTTPException, status

from src.hive_alerts.errors import (
    AlreadyResolvedError,
    ConfigurationError,
    ConflictError,
    HiveAlertsError,
    NotFoundError,
    PartialSweepFailure,
)

_STATUS_BY_ERROR = (
    (ConfigurationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AlreadyResolvedError, status.HTTP_409_CONFLICT),
    (PartialSweepFailure, status.HTTP_502_BAD_GATEWAY),
)


# PUBLIC_INTERFACE
def http_error(exc: HiveAlertsError) -> HTTPException:
    """Translate an engine error into the HTTP error returned to API consumers."""
    for err_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, err_type):
            return HTTPException(status_code=code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
