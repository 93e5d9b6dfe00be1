# forecast_recon/models/entries.py

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Literal
from pydantic import BaseModel, Field

ReconciliationStatus = Literal["unmatched", "fuzzy", "matched"]
DebitCredit = Literal["debit", "credit"]


# ============================================
# Order Forecast
# ============================================

class OrderForecast(BaseModel):
    """A user-entered expected accounting entry."""

    id: str
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    accounting_period: str  # YYYY-MM of recognition
    accounting_item: str
    description: str = ""
    amount: Decimal
    remarks: Optional[str] = None
    period: str

    reconciliation_status: ReconciliationStatus = "unmatched"
    matched_gl_entry_id: Optional[str] = None
    match_confidence: Optional[float] = None

    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderForecastEdit(BaseModel):
    """User edit of an order forecast line. `version` is the one the user read."""

    version: int = Field(ge=1)
    accounting_period: Optional[str] = None
    accounting_item: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    remarks: Optional[str] = None
    period: Optional[str] = None


# ============================================
# GL Entry
# ============================================

class GLEntry(BaseModel):
    """An imported general-ledger posting."""

    id: str
    voucher_no: str
    transaction_date: date
    account_code: str
    account_name: str
    amount: Decimal
    debit_credit: DebitCredit = "debit"
    description: Optional[str] = None
    period: str

    reconciliation_status: ReconciliationStatus = "unmatched"
    matched_order_forecast_id: Optional[str] = None
    match_confidence: Optional[float] = None

    is_excluded: bool = False
    exclusion_reason: Optional[str] = None

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================
# Pending writes
# ============================================

class OrderForecastUpdate(BaseModel):
    """A pending write to one order forecast line.

    Only the fields that were set are written (`model_dump(exclude_unset=True)`).
    `expected_version` is checked by the storage layer before the write.
    """

    id: str
    expected_version: int
    reconciliation_status: Optional[ReconciliationStatus] = None
    matched_gl_entry_id: Optional[str] = None
    match_confidence: Optional[float] = None

    # User-editable fields
    accounting_period: Optional[str] = None
    accounting_item: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    remarks: Optional[str] = None
    period: Optional[str] = None


class GLEntryUpdate(BaseModel):
    """A pending write to one GL entry (same partial semantics)."""

    id: str
    reconciliation_status: Optional[ReconciliationStatus] = None
    matched_order_forecast_id: Optional[str] = None
    match_confidence: Optional[float] = None
    is_excluded: Optional[bool] = None
    exclusion_reason: Optional[str] = None
