# forecast_recon/database.py

from functools import lru_cache
from typing import Optional
import logging

from postgrest.exceptions import APIError
from supabase import create_client, Client

from forecast_recon.config import get_settings
from forecast_recon.core.exceptions import ConflictError, PersistenceError, RunTimeoutError

logger = logging.getLogger(__name__)

ORDER_FORECASTS = "order_forecasts"
GL_ENTRIES = "gl_entries"
RECONCILIATION_LOGS = "reconciliation_logs"

# Raised by apply_reconciliation_batch() on a stale order forecast version
# or a pairing onto a GL entry excluded since it was read
VERSION_CONFLICT_CODE = "40001"
STATEMENT_TIMEOUT_CODE = "57014"
LOCK_TIMEOUT_CODE = "55P03"


@lru_cache()
def get_supabase_admin() -> Client:
    """Admin client (bypasses RLS - use carefully)."""
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_role_key)


# ============================================
# Order forecasts
# ============================================

async def get_order_forecasts(period: str = None, status: str = None) -> list[dict]:
    """Get order forecast lines, oldest first."""
    query = get_supabase_admin().table(ORDER_FORECASTS).select("*")

    if period:
        query = query.eq("period", period)
    if status:
        query = query.eq("reconciliation_status", status)

    response = query.order("created_at").order("id").execute()
    return response.data


async def get_order_forecast(order_id: str) -> dict | None:
    """Get a single order forecast line."""
    response = get_supabase_admin().table(ORDER_FORECASTS).select("*").eq("id", order_id).execute()
    return response.data[0] if response.data else None


async def get_order_forecasts_by_ids(ids: list[str]) -> list[dict]:
    """Get order forecast lines by id, any period."""
    if not ids:
        return []
    response = get_supabase_admin().table(ORDER_FORECASTS).select("*").in_("id", ids).execute()
    return response.data


# ============================================
# GL entries
# ============================================

async def get_gl_entries(
    period: str = None,
    status: str = None,
    include_excluded: bool = True,
) -> list[dict]:
    """Get GL entries, oldest first."""
    query = get_supabase_admin().table(GL_ENTRIES).select("*")

    if period:
        query = query.eq("period", period)
    if status:
        query = query.eq("reconciliation_status", status)
    if not include_excluded:
        query = query.eq("is_excluded", False)

    response = query.order("created_at").order("id").execute()
    return response.data


async def get_gl_entries_by_ids(ids: list[str]) -> list[dict]:
    """Get GL entries by id, any period."""
    if not ids:
        return []
    response = get_supabase_admin().table(GL_ENTRIES).select("*").in_("id", ids).execute()
    return response.data


# ============================================
# Atomic batch writes
# ============================================

async def apply_reconciliation_batch(
    order_updates: list[dict],
    gl_updates: list[dict],
    log: dict | None = None,
    lock_periods: list[str] = None,
    timeout_ms: int | None = None,
) -> dict | None:
    """
    Apply entry updates and an optional log row in one transaction.

    Runs the `apply_reconciliation_batch` Postgres function: it takes the
    advisory lock of every period in `lock_periods`, checks each order
    forecast's `expected_version`, refuses to pair an excluded GL entry,
    writes everything, then inserts the log. Excluding a GL entry also
    releases any pairing it holds at commit time.
    Any failure rolls the whole batch back.

    Returns the inserted log row (None when no log was given).
    """
    params = {
        "p_order_updates": order_updates,
        "p_gl_updates": gl_updates,
        "p_log": log,
        "p_lock_periods": lock_periods or [],
        "p_timeout_ms": timeout_ms,
    }

    try:
        response = get_supabase_admin().rpc("apply_reconciliation_batch", params).execute()
    except APIError as e:
        if e.code == VERSION_CONFLICT_CODE:
            raise ConflictError(e.message or "Order forecast was modified concurrently") from e
        if e.code in (STATEMENT_TIMEOUT_CODE, LOCK_TIMEOUT_CODE):
            raise RunTimeoutError("Reconciliation batch exceeded its time budget") from e
        logger.error(f"Reconciliation batch failed: {e.code} {e.message}")
        raise PersistenceError(f"Reconciliation batch failed: {e.message}") from e

    data = response.data
    if isinstance(data, list):
        return data[0] if data else None
    return data


# ============================================
# Reconciliation logs
# ============================================

async def get_reconciliation_logs(
    period: str = None,
    period_from: str = None,
    period_to: str = None,
    limit: int = 20,
    offset: int = 0,
    sort_by: str = "executed_at",
    sort_order: str = "desc",
) -> tuple[list[dict], int]:
    """Get reconciliation logs with filters."""
    query = get_supabase_admin().table(RECONCILIATION_LOGS).select("*", count="exact")

    if period:
        query = query.eq("period", period)
    if period_from:
        query = query.gte("period", period_from)
    if period_to:
        query = query.lte("period", period_to)

    response = (
        query.order(sort_by, desc=sort_order == "desc")
        .range(offset, offset + limit - 1)
        .execute()
    )
    return response.data, response.count


async def get_reconciliation_log(log_id: str) -> dict | None:
    """Get a single reconciliation log."""
    response = get_supabase_admin().table(RECONCILIATION_LOGS).select("*").eq("id", log_id).execute()
    return response.data[0] if response.data else None


async def get_latest_reconciliation_log(period: Optional[str] = None) -> dict | None:
    """Get the most recent log, overall or for one period."""
    query = get_supabase_admin().table(RECONCILIATION_LOGS).select("*")
    if period:
        query = query.eq("period", period)

    response = query.order("executed_at", desc=True).limit(1).execute()
    return response.data[0] if response.data else None


async def get_all_reconciliation_logs() -> list[dict]:
    """Every log row, for statistics."""
    response = (
        get_supabase_admin()
        .table(RECONCILIATION_LOGS)
        .select("*")
        .order("executed_at", desc=True)
        .execute()
    )
    return response.data
