# forecast_recon/core/runner.py

"""
Reconciliation run orchestration.

validate -> lock period -> load pool -> match -> commit updates + log

Validation happens before the lock and before any read, so a rejected
request touches nothing.
"""

from typing import Optional
import asyncio
import logging
import time

from forecast_recon.models import GLEntry, OrderForecast, ReconciliationRun
from forecast_recon.core.exceptions import (
    PersistenceError,
    ReconciliationError,
    RunTimeoutError,
    ValidationError,
)
from forecast_recon.core.locks import period_locks
from forecast_recon.core.matching import RUN_MODES, ReconciliationResult, reconcile
from forecast_recon.core.normalizers import normalize_period
from forecast_recon.core import recorder
from forecast_recon.config import Settings, get_settings
from forecast_recon import database

logger = logging.getLogger(__name__)


class LoadedPool:
    """Everything one run reads from storage."""

    def __init__(self):
        self.orders: list[OrderForecast] = []
        self.gl_entries: list[GLEntry] = []
        self.outside_orders: dict[str, OrderForecast] = {}
        self.outside_gl: dict[str, GLEntry] = {}


def validate_run_request(
    period: Optional[str],
    mode: Optional[str],
    fuzzy_threshold: Optional[float] = None,
    amount_tolerance_percent: Optional[float] = None,
) -> tuple[str, str]:
    """Normalize the trigger input or raise ValidationError naming the field."""
    normalized = normalize_period(period, field="period")

    if mode not in RUN_MODES:
        raise ValidationError("mode", f"mode must be one of {', '.join(RUN_MODES)}")
    if fuzzy_threshold is not None and not 0 <= fuzzy_threshold <= 100:
        raise ValidationError("fuzzy_threshold", "must be between 0 and 100")
    if amount_tolerance_percent is not None and amount_tolerance_percent < 0:
        raise ValidationError("amount_tolerance_percent", "must not be negative")

    return normalized, mode


async def load_pool(period: str) -> LoadedPool:
    """Load the period's entries plus out-of-period counterparts they reference."""
    pool = LoadedPool()
    pool.orders = [OrderForecast(**row) for row in await database.get_order_forecasts(period=period)]
    pool.gl_entries = [GLEntry(**row) for row in await database.get_gl_entries(period=period)]

    order_ids = {o.id for o in pool.orders}
    gl_ids = {g.id for g in pool.gl_entries}

    missing_gl = sorted({
        o.matched_gl_entry_id for o in pool.orders
        if o.matched_gl_entry_id and o.matched_gl_entry_id not in gl_ids
    })
    missing_orders = sorted({
        g.matched_order_forecast_id for g in pool.gl_entries
        if g.matched_order_forecast_id and g.matched_order_forecast_id not in order_ids
    })

    for row in await database.get_gl_entries_by_ids(missing_gl):
        gl = GLEntry(**row)
        pool.outside_gl[gl.id] = gl
    for row in await database.get_order_forecasts_by_ids(missing_orders):
        order = OrderForecast(**row)
        pool.outside_orders[order.id] = order

    return pool


async def run_reconciliation(
    period: Optional[str],
    mode: Optional[str] = "fuzzy",
    executed_by: Optional[str] = None,
    fuzzy_threshold: Optional[float] = None,
    amount_tolerance_percent: Optional[float] = None,
    settings: Optional[Settings] = None,
) -> tuple[ReconciliationRun, ReconciliationResult]:
    """
    Run reconciliation for one period and persist the outcome.

    Returns the stored log row and the in-memory result. Either every
    update and the log row are committed, or nothing is.
    """
    period, mode = validate_run_request(period, mode, fuzzy_threshold, amount_tolerance_percent)
    if settings is None:
        settings = get_settings()

    async with period_locks(period):
        started = time.monotonic()
        deadline = started + settings.run_timeout_seconds

        try:
            pool = await asyncio.wait_for(load_pool(period), timeout=settings.run_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise RunTimeoutError(f"Loading {period} exceeded {settings.run_timeout_seconds}s") from e

        result = reconcile(
            pool.orders,
            pool.gl_entries,
            period,
            mode,
            outside_orders=pool.outside_orders,
            outside_gl=pool.outside_gl,
            settings=settings,
            accept_threshold=fuzzy_threshold,
            tolerance_percent=amount_tolerance_percent,
        )

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.error(f"Run for {period} exceeded {settings.run_timeout_seconds}s before commit")
            raise RunTimeoutError(f"Run for {period} exceeded {settings.run_timeout_seconds}s")

        try:
            run = await recorder.record_run(result, executed_by, timeout_ms=int(remaining * 1000))
        except ReconciliationError:
            logger.exception(f"Run for {period} failed to commit; nothing was written")
            raise
        except Exception as e:
            logger.exception(f"Run for {period} failed to commit; nothing was written")
            raise PersistenceError(f"Run for {period} failed to commit: {e}") from e

    logger.info(
        f"Run for {period} ({mode}) complete: {run.matched_count} matched, "
        f"{run.fuzzy_matched_count} fuzzy, {run.unmatched_order_count} unmatched orders, "
        f"{run.unmatched_gl_count} unmatched GL in {int((time.monotonic() - started) * 1000)}ms"
    )
    return run, result
