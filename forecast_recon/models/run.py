# forecast_recon/models/run.py

from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field

RunMode = Literal["exact", "fuzzy"]


# ============================================
# Reconciliation Run (audit log row)
# ============================================

class ReconciliationRun(BaseModel):
    """One append-only audit row per reconciliation run."""

    id: Optional[str] = None
    period: str
    executed_at: datetime
    mode: RunMode = "fuzzy"

    matched_count: int = 0
    fuzzy_matched_count: int = 0
    unmatched_order_count: int = 0
    unmatched_gl_count: int = 0
    total_order_count: int = 0
    total_gl_count: int = 0
    excluded_gl_count: int = 0

    anomaly_count: int = 0
    executed_by: Optional[str] = None
    duration_ms: Optional[int] = None

    class Config:
        from_attributes = True


class RunStatistics(BaseModel):
    """Aggregates over every logged run."""

    total_executions: int
    total_matched: int
    total_fuzzy_matched: int
    total_unmatched: int
    average_match_rate: float = Field(description="Percent of order lines paired, averaged per run")
    last_execution_date: Optional[datetime] = None
