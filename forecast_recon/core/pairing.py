# forecast_recon/core/pairing.py

"""
Cross-reference ownership.

`matched_gl_entry_id` / `matched_order_forecast_id` are a symmetric relation.
Every write to them (runs, exclusions, edits) is built here so both sides
always move together.
"""

from typing import Optional

from forecast_recon.models import (
    GLEntry,
    GLEntryUpdate,
    OrderForecast,
    OrderForecastUpdate,
    PairStatus,
)


def is_symmetric(order: OrderForecast, gl: GLEntry) -> bool:
    """Both sides point at each other and carry a paired status."""
    return (
        order.matched_gl_entry_id == gl.id
        and gl.matched_order_forecast_id == order.id
        and order.reconciliation_status != "unmatched"
        and gl.reconciliation_status != "unmatched"
        and not gl.is_excluded
    )


def pair(
    order: OrderForecast,
    gl: GLEntry,
    status: PairStatus,
    confidence: float,
) -> tuple[OrderForecastUpdate, GLEntryUpdate]:
    """Updates that pair an order forecast line with a GL entry."""
    return (
        OrderForecastUpdate(
            id=order.id,
            expected_version=order.version,
            reconciliation_status=status,
            matched_gl_entry_id=gl.id,
            match_confidence=confidence,
        ),
        GLEntryUpdate(
            id=gl.id,
            reconciliation_status=status,
            matched_order_forecast_id=order.id,
            match_confidence=confidence,
        ),
    )


def release_order(order: OrderForecast) -> Optional[OrderForecastUpdate]:
    """Reset an order forecast line to unmatched. None if it already is."""
    if (
        order.reconciliation_status == "unmatched"
        and order.matched_gl_entry_id is None
        and order.match_confidence is None
    ):
        return None
    return OrderForecastUpdate(
        id=order.id,
        expected_version=order.version,
        reconciliation_status="unmatched",
        matched_gl_entry_id=None,
        match_confidence=None,
    )


def release_gl(gl: GLEntry) -> Optional[GLEntryUpdate]:
    """Reset a GL entry to unmatched. None if it already is."""
    if (
        gl.reconciliation_status == "unmatched"
        and gl.matched_order_forecast_id is None
        and gl.match_confidence is None
    ):
        return None
    return GLEntryUpdate(
        id=gl.id,
        reconciliation_status="unmatched",
        matched_order_forecast_id=None,
        match_confidence=None,
    )


def unchanged(order_or_gl: OrderForecast | GLEntry, status: str, counterpart_id: Optional[str], confidence: Optional[float]) -> bool:
    """True when the stored pairing already equals the computed one."""
    if isinstance(order_or_gl, OrderForecast):
        stored_counterpart = order_or_gl.matched_gl_entry_id
    else:
        stored_counterpart = order_or_gl.matched_order_forecast_id
    return (
        order_or_gl.reconciliation_status == status
        and stored_counterpart == counterpart_id
        and order_or_gl.match_confidence == confidence
    )
