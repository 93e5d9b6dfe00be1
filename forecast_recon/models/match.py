# forecast_recon/models/match.py

from decimal import Decimal
from typing import Optional, Literal
from pydantic import BaseModel, Field


# ============================================
# Candidate Scoring
# ============================================

Classification = Literal["exact", "fuzzy", "no_match"]

class CandidateScore(BaseModel):
    """How one order forecast line compares to one GL entry."""

    classification: Classification
    confidence: float = Field(ge=0, le=100)
    amount_diff: Decimal
    date_diff_days: Optional[int] = None

    # Sub-scores, 1.0 at perfect agreement
    amount_score: float = 0.0
    date_score: float = 0.0
    text_score: float = 0.0

    factors: list[str] = Field(default_factory=list, description="Human-readable factors")


# ============================================
# Pairing
# ============================================

PairStatus = Literal["matched", "fuzzy"]

class MatchPair(BaseModel):
    """An order forecast line paired with a GL entry by one run."""

    order_forecast_id: str
    gl_entry_id: str
    status: PairStatus
    confidence: float
    amount_diff: Decimal = Decimal("0")
    date_diff_days: Optional[int] = None


# ============================================
# Load-time anomalies
# ============================================

AnomalyType = Literal[
    "one_sided_pairing",
    "dangling_reference",
    "status_reference_mismatch",
    "excluded_entry_paired",
]

class Anomaly(BaseModel):
    """An invariant violation found while loading the pool."""

    type: AnomalyType
    entity: Literal["order_forecast", "gl_entry"]
    entity_id: str
    detail: str
