# forecast_recon/routers/gl_entries.py

"""
GL entry routes.

Listing imported GL entries and toggling their exclusion from matching.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from typing import Optional

from forecast_recon import database
from forecast_recon.core.exceptions import ReconciliationError
from forecast_recon.core.exclusion import set_exclusion
from forecast_recon.core.normalizers import normalize_period
from forecast_recon.dependencies import get_current_user
from forecast_recon.models import ReconciliationStatus
from forecast_recon.routers.errors import to_http_exception

router = APIRouter()


# ============================================
# Request/Response Models
# ============================================

class SetExclusionRequest(BaseModel):
    gl_entry_ids: list[str] = Field(default_factory=list)
    is_excluded: bool
    exclusion_reason: Optional[str] = None


class SetExclusionResponse(BaseModel):
    success: bool
    updated_count: int


# ============================================
# List
# ============================================

@router.get("")
async def list_gl_entries(
    user_id: str = Depends(get_current_user),
    period: Optional[str] = Query(None, description="Filter by period (YYYY-MM)"),
    status: Optional[ReconciliationStatus] = Query(None, description="Filter by reconciliation status"),
    include_excluded: bool = Query(True, description="Include excluded entries"),
):
    """
    List GL entries, oldest first.
    """
    try:
        period = normalize_period(period) if period else None
    except ReconciliationError as e:
        raise to_http_exception(e)

    entries = await database.get_gl_entries(
        period=period,
        status=status,
        include_excluded=include_excluded,
    )

    return {
        "success": True,
        "gl_entries": entries,
        "count": len(entries),
    }


# ============================================
# Exclusion
# ============================================

@router.post("/set-exclusion", response_model=SetExclusionResponse)
async def set_gl_exclusion(
    request: SetExclusionRequest,
    user_id: str = Depends(get_current_user),
):
    """
    Exclude GL entries from matching, or include them again.

    Excluding a paired entry releases the pairing on both sides.
    """
    try:
        updated = await set_exclusion(
            request.gl_entry_ids,
            request.is_excluded,
            request.exclusion_reason,
        )
    except ReconciliationError as e:
        raise to_http_exception(e)

    return SetExclusionResponse(success=True, updated_count=updated)
