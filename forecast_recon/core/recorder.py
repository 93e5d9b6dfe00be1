# forecast_recon/core/recorder.py

"""
Reconciliation log recorder.

One append-only audit row per run, committed in the same transaction as the
entry updates it summarizes. Rows are never updated or deleted.
"""

from datetime import datetime, timezone
from typing import Optional
import logging

from forecast_recon.models import ReconciliationRun, RunStatistics
from forecast_recon.core.matching import ReconciliationResult
from forecast_recon import database

logger = logging.getLogger(__name__)


def build_run_log(
    result: ReconciliationResult,
    executed_by: Optional[str] = None,
    executed_at: Optional[datetime] = None,
) -> ReconciliationRun:
    """Summarize a run into its audit row."""
    return ReconciliationRun(
        period=result.period,
        executed_at=executed_at or datetime.now(timezone.utc),
        mode=result.mode,
        matched_count=result.matched_count,
        fuzzy_matched_count=result.fuzzy_matched_count,
        unmatched_order_count=result.unmatched_order_count,
        unmatched_gl_count=result.unmatched_gl_count,
        total_order_count=result.total_order_count,
        total_gl_count=result.total_gl_count,
        excluded_gl_count=result.excluded_gl_count,
        anomaly_count=len(result.anomalies),
        executed_by=executed_by,
        duration_ms=result.duration_ms,
    )


async def record_run(
    result: ReconciliationResult,
    executed_by: Optional[str] = None,
    timeout_ms: Optional[int] = None,
) -> ReconciliationRun:
    """
    Commit the run's entry updates and its log row as one batch.

    Raises ConflictError / PersistenceError from the storage layer; in that
    case nothing was written, log row included.
    """
    run = build_run_log(result, executed_by)

    saved = await database.apply_reconciliation_batch(
        order_updates=[u.model_dump(mode="json", exclude_unset=True) for u in result.order_updates],
        gl_updates=[u.model_dump(mode="json", exclude_unset=True) for u in result.gl_updates],
        log=run.model_dump(mode="json", exclude={"id"}),
        lock_periods=[result.period],
        timeout_ms=timeout_ms,
    )

    logger.info(
        f"Recorded run for {result.period}: {len(result.order_updates)} order and "
        f"{len(result.gl_updates)} GL updates"
    )
    return ReconciliationRun(**saved) if saved else run


def compute_statistics(logs: list[dict]) -> RunStatistics:
    """Aggregate every logged run."""
    runs = [ReconciliationRun(**log) for log in logs]

    match_rates = [
        (r.matched_count + r.fuzzy_matched_count) / r.total_order_count * 100
        for r in runs
        if r.total_order_count > 0
    ]

    return RunStatistics(
        total_executions=len(runs),
        total_matched=sum(r.matched_count for r in runs),
        total_fuzzy_matched=sum(r.fuzzy_matched_count for r in runs),
        total_unmatched=sum(r.unmatched_order_count for r in runs),
        average_match_rate=round(sum(match_rates) / len(match_rates), 2) if match_rates else 0.0,
        last_execution_date=max((r.executed_at for r in runs), default=None),
    )
