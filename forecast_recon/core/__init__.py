# forecast_recon/core/__init__.py

from forecast_recon.core.matching import reconcile, ReconciliationResult
from forecast_recon.core.confidence import score_candidate
from forecast_recon.core.normalizers import (
    normalize_text,
    texts_match,
    normalize_period,
    period_bounds,
)
from forecast_recon.core.exceptions import (
    ReconciliationError,
    ValidationError,
    ConflictError,
    PersistenceError,
    RunTimeoutError,
    NotFoundError,
)

__all__ = [
    "reconcile",
    "ReconciliationResult",
    "score_candidate",
    "normalize_text",
    "texts_match",
    "normalize_period",
    "period_bounds",
    "ReconciliationError",
    "ValidationError",
    "ConflictError",
    "PersistenceError",
    "RunTimeoutError",
    "NotFoundError",
]
