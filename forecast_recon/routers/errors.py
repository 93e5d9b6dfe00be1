# forecast_recon/routers/errors.py

from fastapi import HTTPException

from forecast_recon.core.exceptions import (
    ConflictError,
    NotFoundError,
    ReconciliationError,
    RunTimeoutError,
    ValidationError,
)


def to_http_exception(error: ReconciliationError) -> HTTPException:
    """Map a core exception onto the HTTP error the caller sees."""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail={"field": error.field, "message": error.message})
    if isinstance(error, ConflictError):
        return HTTPException(
            status_code=409,
            detail={"message": str(error), "entity_id": error.entity_id, "retryable": True},
        )
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, RunTimeoutError):
        return HTTPException(status_code=504, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
