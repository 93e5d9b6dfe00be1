# forecast_recon/core/normalizers.py

"""
Text and period normalization for reconciliation.

Ensures full-width/half-width, whitespace and dash variants of the same
Japanese business text compare equal.
"""

from calendar import monthrange
from datetime import date
from typing import Any
import re
import unicodedata

from forecast_recon.core.exceptions import ValidationError


# Full-width ASCII letters and digits -> half-width
_FULLWIDTH_ALNUM = {
    **{code: code - 0xFEE0 for code in range(0xFF10, 0xFF1A)},  # ０-９
    **{code: code - 0xFEE0 for code in range(0xFF21, 0xFF3B)},  # Ａ-Ｚ
    **{code: code - 0xFEE0 for code in range(0xFF41, 0xFF5B)},  # ａ-ｚ
}

# Half-width katakana block, including the sound marks
_HALFWIDTH_KANA_RE = re.compile(r"[\uFF65-\uFF9F]+")

# Hyphen-minus, full-width hyphen, prolonged sound mark, and the dash family
_DASH_RE = re.compile(r"[\-\uFF0D\u30FC\uFF70\u2010-\u2015\u2212\uFE63]")

_WHITESPACE_RE = re.compile(r"\s+")

_PERIOD_RE = re.compile(r"^(\d{4})\s*[-/]\s*(\d{1,2})$")


def normalize_text(text: str | None) -> str:
    """
    Convert display text into a comparison key.

    Order is fixed:
    1. full-width alphanumerics -> half-width
    2. half-width katakana -> full-width (voiced marks are composed)
    3. full-width space -> half-width space
    4. hyphen/dash variants removed
    5. whitespace runs collapsed, then trimmed
    6. lower-cased
    """
    if not text:
        return ""

    s = text.translate(_FULLWIDTH_ALNUM)
    s = _HALFWIDTH_KANA_RE.sub(lambda m: unicodedata.normalize("NFKC", m.group()), s)
    s = s.replace("\u3000", " ")
    s = _DASH_RE.sub("", s)
    s = _WHITESPACE_RE.sub(" ", s).strip()
    return s.lower()


def texts_match(a: str | None, b: str | None) -> bool:
    """True when both texts normalize to the same key."""
    return normalize_text(a) == normalize_text(b)


def normalize_period(value: Any, field: str = "period") -> str:
    """
    Normalize a fiscal period to ``YYYY-MM``.

    Accepts ``2025-04``, ``2025/4`` and full-width digits.
    Raises ValidationError for anything else, including None.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(field, "period is required (YYYY-MM)")

    if not isinstance(value, str):
        raise ValidationError(field, f"period must be a string, got {type(value).__name__}")

    match = _PERIOD_RE.match(value.translate(_FULLWIDTH_ALNUM).strip())
    if not match:
        raise ValidationError(field, f"invalid period {value!r}, expected YYYY-MM")

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(field, f"invalid month {month} in period {value!r}")

    return f"{year:04d}-{month:02d}"


def period_bounds(period: str) -> tuple[date, date]:
    """First and last day of a ``YYYY-MM`` period."""
    normalized = normalize_period(period)
    year, month = int(normalized[:4]), int(normalized[5:])
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])
