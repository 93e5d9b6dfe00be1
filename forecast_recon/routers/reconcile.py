# forecast_recon/routers/reconcile.py

"""
Reconciliation routes.

Triggers the matching engine and exposes the run audit log.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from typing import Literal, Optional

from forecast_recon import database
from forecast_recon.core.exceptions import ReconciliationError, ValidationError
from forecast_recon.core.normalizers import normalize_period
from forecast_recon.core.recorder import compute_statistics
from forecast_recon.core.runner import run_reconciliation
from forecast_recon.dependencies import get_current_user
from forecast_recon.routers.errors import to_http_exception

router = APIRouter()


class ExecuteRequest(BaseModel):
    period: Optional[str] = None
    mode: Optional[str] = "fuzzy"
    fuzzy_threshold: Optional[float] = None
    amount_tolerance_percent: Optional[float] = None


class ExecuteResponse(BaseModel):
    success: bool
    total_matched: int
    total_fuzzy: int
    total_unmatched_orders: int
    total_unmatched_gl: int
    anomalies: list[dict]
    log: dict


# ============================================
# Trigger a run
# ============================================

@router.post("/execute", response_model=ExecuteResponse)
async def execute_reconciliation(request: ExecuteRequest, user_id: str = Depends(get_current_user)):
    """
    Run reconciliation for one period.

    mode="exact" runs the exact pass only; mode="fuzzy" runs exact then fuzzy.
    The response mirrors the log row that was written.
    """
    try:
        run, result = await run_reconciliation(
            request.period,
            request.mode,
            executed_by=user_id,
            fuzzy_threshold=request.fuzzy_threshold,
            amount_tolerance_percent=request.amount_tolerance_percent,
        )
    except ReconciliationError as e:
        raise to_http_exception(e)

    return ExecuteResponse(
        success=True,
        total_matched=run.matched_count,
        total_fuzzy=run.fuzzy_matched_count,
        total_unmatched_orders=run.unmatched_order_count,
        total_unmatched_gl=run.unmatched_gl_count,
        anomalies=[a.model_dump() for a in result.anomalies],
        log=run.model_dump(mode="json"),
    )


# ============================================
# Run log
# ============================================

@router.get("/logs")
async def list_logs(
    user_id: str = Depends(get_current_user),
    period: Optional[str] = Query(None, description="Exact period (YYYY-MM)"),
    period_from: Optional[str] = Query(None, description="Inclusive lower bound"),
    period_to: Optional[str] = Query(None, description="Inclusive upper bound"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: Literal["executed_at", "period"] = Query("executed_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
):
    """
    List reconciliation runs, newest first by default.
    """
    try:
        filters = {
            "period": normalize_period(period, "period") if period else None,
            "period_from": normalize_period(period_from, "period_from") if period_from else None,
            "period_to": normalize_period(period_to, "period_to") if period_to else None,
        }
    except ValidationError as e:
        raise to_http_exception(e)

    logs, total = await database.get_reconciliation_logs(
        **filters,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
    )

    return {
        "success": True,
        "logs": logs,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + limit < (total or 0),
        },
    }


@router.get("/logs/latest")
async def latest_log(
    user_id: str = Depends(get_current_user),
    period: Optional[str] = Query(None, description="Restrict to one period"),
):
    """
    Get the most recent run, overall or for one period.
    """
    try:
        period = normalize_period(period) if period else None
    except ValidationError as e:
        raise to_http_exception(e)

    log = await database.get_latest_reconciliation_log(period)
    if not log:
        raise HTTPException(status_code=404, detail="Reconciliation log not found")

    return {"success": True, "log": log}


@router.get("/logs/{log_id}")
async def get_log(log_id: str, user_id: str = Depends(get_current_user)):
    """
    Get a single run by ID.
    """
    log = await database.get_reconciliation_log(log_id)
    if not log:
        raise HTTPException(status_code=404, detail="Reconciliation log not found")

    return {"success": True, "log": log}


@router.get("/statistics")
async def get_statistics(user_id: str = Depends(get_current_user)):
    """
    Aggregate numbers over every logged run.
    """
    logs = await database.get_all_reconciliation_logs()
    statistics = compute_statistics(logs)

    return {"success": True, "statistics": statistics.model_dump(mode="json")}
