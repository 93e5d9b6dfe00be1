# forecast_recon/core/confidence.py

"""
Candidate scoring for order forecast ↔ GL matching.

Exact:  same period, identical amount, agreeing account  -> confidence 100
Fuzzy:  weighted blend of three sub-scores (each 0.0-1.0)
- Amount agreement:  default weight 60
- Date agreement:    default weight 25 (inside the accounting month)
- Text agreement:    default weight 15
"""

from datetime import date
from decimal import Decimal
from difflib import SequenceMatcher
from typing import Optional

from forecast_recon.models import CandidateScore, GLEntry, OrderForecast
from forecast_recon.core.normalizers import normalize_text, period_bounds
from forecast_recon.core.exceptions import ValidationError
from forecast_recon.config import Settings, get_settings

EXACT_CONFIDENCE = 100.0
MAX_FUZZY_CONFIDENCE = 99.99


def score_candidate(
    order: OrderForecast,
    gl: GLEntry,
    order_paired: bool = False,
    gl_paired: bool = False,
    settings: Optional[Settings] = None,
    accept_threshold: Optional[float] = None,
    tolerance_percent: Optional[float] = None,
) -> CandidateScore:
    """
    Classify an order forecast line against a GL entry.

    Pure: neither input is mutated. `order_paired` / `gl_paired` tell the
    scorer that a side is already taken in the current run.
    """
    if settings is None:
        settings = get_settings()
    if accept_threshold is None:
        accept_threshold = settings.fuzzy_accept_threshold
    if tolerance_percent is None:
        tolerance_percent = settings.fuzzy_amount_tolerance_percent

    amount_diff = abs(order.amount - gl.amount)
    factors: list[str] = []

    if gl.is_excluded:
        return _no_match(amount_diff, None, ["GL entry is excluded"])
    if order_paired or gl_paired:
        return _no_match(amount_diff, None, ["Already paired in this run"])
    if order.period != gl.period:
        return _no_match(amount_diff, None, [f"Period differs ({order.period} vs {gl.period})"])

    date_diff_days = _date_diff_days(order.accounting_period, gl.transaction_date)
    account_agrees = account_matches(order.accounting_item, gl)

    # ============================================
    # Exact classification
    # ============================================
    if amount_diff == 0 and account_agrees:
        return CandidateScore(
            classification="exact",
            confidence=EXACT_CONFIDENCE,
            amount_diff=amount_diff,
            date_diff_days=date_diff_days,
            amount_score=1.0,
            date_score=_score_date(date_diff_days, order.accounting_period),
            text_score=_score_text(order.description, gl),
            factors=["Exact amount match", "Account agrees", "Same period"],
        )

    # ============================================
    # Fuzzy candidacy
    # ============================================
    if date_diff_days is None:
        factors.append(f"Transaction date {gl.transaction_date} outside {order.accounting_period}")
        return _no_match(amount_diff, None, factors)

    tolerance = amount_tolerance(order.amount, settings, tolerance_percent)
    if amount_diff > tolerance:
        factors.append(f"Amount differs by {amount_diff:,} (tolerance {tolerance:,})")
        return _no_match(amount_diff, date_diff_days, factors)

    text_agrees = description_matches(order.description, gl)
    if not (account_agrees or text_agrees):
        factors.append("Neither account nor description agrees")
        return _no_match(amount_diff, date_diff_days, factors)

    amount_score = _score_amount(amount_diff, tolerance, factors)
    date_score = _score_date(date_diff_days, order.accounting_period, factors)
    text_score = _score_text(order.description, gl, factors)
    if account_agrees:
        factors.append("Account agrees")

    blended = (
        settings.fuzzy_weight_amount * amount_score
        + settings.fuzzy_weight_date * date_score
        + settings.fuzzy_weight_text * text_score
    )
    confidence = min(round(blended, 2), MAX_FUZZY_CONFIDENCE)

    if confidence < accept_threshold:
        factors.append(f"Confidence {confidence} below threshold {accept_threshold}")
        return CandidateScore(
            classification="no_match",
            confidence=confidence,
            amount_diff=amount_diff,
            date_diff_days=date_diff_days,
            amount_score=amount_score,
            date_score=date_score,
            text_score=text_score,
            factors=factors,
        )

    return CandidateScore(
        classification="fuzzy",
        confidence=confidence,
        amount_diff=amount_diff,
        date_diff_days=date_diff_days,
        amount_score=amount_score,
        date_score=date_score,
        text_score=text_score,
        factors=factors,
    )


def account_matches(accounting_item: str, gl: GLEntry) -> bool:
    """The order's accounting item names the GL account, by code or by name."""
    item = normalize_text(accounting_item)
    if not item:
        return False
    return item == normalize_text(gl.account_code) or item == normalize_text(gl.account_name)


def description_matches(description: str | None, gl: GLEntry) -> bool:
    """The order description equals the GL account name or GL description once normalized."""
    key = normalize_text(description)
    if not key:
        return False
    return key == normalize_text(gl.account_name) or key == normalize_text(gl.description)


def amount_tolerance(
    order_amount: Decimal,
    settings: Settings,
    tolerance_percent: Optional[float] = None,
) -> Decimal:
    """Relative tolerance, clamped between the configured floor and ceiling."""
    if tolerance_percent is None:
        tolerance_percent = settings.fuzzy_amount_tolerance_percent

    relative = abs(order_amount) * Decimal(str(tolerance_percent)) / Decimal("100")
    floor = Decimal(str(settings.fuzzy_amount_tolerance_floor))
    ceiling = Decimal(str(settings.fuzzy_amount_tolerance_ceiling))
    return min(max(relative, floor), ceiling)


def _date_diff_days(accounting_period: str, transaction_date: date) -> Optional[int]:
    """Days between the transaction and the month end of the accounting period.

    None when the transaction falls outside that month (or the period is unusable).
    """
    try:
        first_day, last_day = period_bounds(accounting_period)
    except ValidationError:
        return None

    if not first_day <= transaction_date <= last_day:
        return None
    return (last_day - transaction_date).days


def _score_amount(amount_diff: Decimal, tolerance: Decimal, factors: list[str]) -> float:
    """1.0 for identical amounts, 0.0 at the tolerance boundary."""
    if amount_diff == 0:
        factors.append("Exact amount match")
        return 1.0
    if tolerance == 0:
        return 0.0

    score = 1.0 - float(amount_diff / tolerance)
    factors.append(f"Amount within tolerance ({amount_diff:,} difference)")
    return max(0.0, score)


def _score_date(
    date_diff_days: Optional[int],
    accounting_period: str,
    factors: list[str] | None = None,
) -> float:
    """1.0 anywhere inside the accounting month, 0.0 outside it.

    The month is the date tolerance: a posting on the 1st agrees with the
    forecast as fully as one on the period end.
    """
    if date_diff_days is None:
        return 0.0

    if factors is not None:
        factors.append(f"Posted within {accounting_period} ({date_diff_days} days before the period end)")
    return 1.0


def _score_text(description: str | None, gl: GLEntry, factors: list[str] | None = None) -> float:
    """1.0 on a normalized match, otherwise the best similarity ratio."""
    if description_matches(description, gl):
        if factors is not None:
            factors.append("Description matches after normalization")
        return 1.0

    key = normalize_text(description)
    if not key:
        return 0.0

    similarity = max(
        _similarity(key, normalize_text(gl.account_name)),
        _similarity(key, normalize_text(gl.description)),
    )
    if factors is not None and similarity > 0.5:
        factors.append(f"Description similar ({similarity:.0%})")
    return similarity


def _similarity(s1: str, s2: str) -> float:
    if not s1 or not s2:
        return 0.0
    return SequenceMatcher(None, s1, s2).ratio()


def _no_match(amount_diff: Decimal, date_diff_days: Optional[int], factors: list[str]) -> CandidateScore:
    return CandidateScore(
        classification="no_match",
        confidence=0.0,
        amount_diff=amount_diff,
        date_diff_days=date_diff_days,
        factors=factors,
    )
