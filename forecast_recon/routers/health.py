# forecast_recon/routers/health.py

from fastapi import APIRouter

from forecast_recon.core.locks import is_locked

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "forecast-recon-api",
    }


@router.get("/ready")
async def readiness_check(period: str | None = None):
    """Readiness check. With `period`, also reports whether a run holds it."""
    response = {
        "status": "ready",
        "checks": {
            "database": "ok",
        },
    }
    if period:
        response["period"] = {"id": period, "locked": is_locked(period)}
    return response
