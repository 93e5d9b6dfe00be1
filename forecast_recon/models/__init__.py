# forecast_recon/models/__init__.py

from forecast_recon.models.entries import (
    ReconciliationStatus,
    DebitCredit,
    OrderForecast,
    OrderForecastEdit,
    OrderForecastUpdate,
    GLEntry,
    GLEntryUpdate,
)
from forecast_recon.models.match import (
    Classification,
    CandidateScore,
    PairStatus,
    MatchPair,
    AnomalyType,
    Anomaly,
)
from forecast_recon.models.run import (
    RunMode,
    ReconciliationRun,
    RunStatistics,
)

__all__ = [
    # Entries
    "ReconciliationStatus",
    "DebitCredit",
    "OrderForecast",
    "OrderForecastEdit",
    "OrderForecastUpdate",
    "GLEntry",
    "GLEntryUpdate",
    # Match
    "Classification",
    "CandidateScore",
    "PairStatus",
    "MatchPair",
    "AnomalyType",
    "Anomaly",
    # Run
    "RunMode",
    "ReconciliationRun",
    "RunStatistics",
]
