# forecast_recon/routers/order_forecasts.py

"""
Order forecast routes.
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from forecast_recon import database
from forecast_recon.core.exceptions import ReconciliationError
from forecast_recon.core.forecast_edits import update_order_forecast
from forecast_recon.core.normalizers import normalize_period
from forecast_recon.dependencies import get_current_user
from forecast_recon.models import OrderForecastEdit, ReconciliationStatus
from forecast_recon.routers.errors import to_http_exception

router = APIRouter()


@router.get("")
async def list_order_forecasts(
    user_id: str = Depends(get_current_user),
    period: Optional[str] = Query(None, description="Filter by period (YYYY-MM)"),
    status: Optional[ReconciliationStatus] = Query(None, description="Filter by reconciliation status"),
):
    """
    List order forecast lines, oldest first.
    """
    try:
        period = normalize_period(period) if period else None
    except ReconciliationError as e:
        raise to_http_exception(e)

    forecasts = await database.get_order_forecasts(period=period, status=status)

    return {
        "success": True,
        "order_forecasts": forecasts,
        "count": len(forecasts),
    }


@router.patch("/{order_id}")
async def edit_order_forecast(
    order_id: str,
    edit: OrderForecastEdit,
    user_id: str = Depends(get_current_user),
):
    """
    Edit an order forecast line.

    `version` must be the one the client read; a stale version returns 409.
    Changing a matching field releases the line's pairing.
    """
    try:
        forecast = await update_order_forecast(order_id, edit)
    except ReconciliationError as e:
        raise to_http_exception(e)

    return {
        "success": True,
        "order_forecast": forecast.model_dump(mode="json"),
    }
