# forecast_recon/core/forecast_edits.py

"""
Versioned edits of order forecast lines.

The caller supplies the version it read; a stale version is a ConflictError.
Changing a field the matcher looks at releases the line's pairing.
"""

from typing import Optional
import logging

from forecast_recon.models import (
    GLEntry,
    GLEntryUpdate,
    OrderForecast,
    OrderForecastEdit,
    OrderForecastUpdate,
)
from forecast_recon.core.exceptions import ConflictError, NotFoundError, ValidationError
from forecast_recon.core.locks import period_locks
from forecast_recon.core.normalizers import normalize_period
from forecast_recon.core import pairing
from forecast_recon import database

logger = logging.getLogger(__name__)

MATCHING_FIELDS = ("accounting_period", "accounting_item", "description", "amount", "period")
NULLABLE_FIELDS = ("remarks",)


def plan_order_edit(
    order: OrderForecast,
    edit: OrderForecastEdit,
    counterpart: Optional[GLEntry] = None,
) -> tuple[OrderForecastUpdate, Optional[GLEntryUpdate]]:
    """Build the writes for one edit. Raises ConflictError on a stale version."""
    if edit.version != order.version:
        raise ConflictError(
            f"Order forecast {order.id} is at version {order.version}, edit was based on {edit.version}",
            entity_id=order.id,
        )

    changes = edit.model_dump(exclude_unset=True, exclude={"version"})
    changes = {k: v for k, v in changes.items() if v is not None or k in NULLABLE_FIELDS}

    for field in ("period", "accounting_period"):
        if field in changes:
            changes[field] = normalize_period(changes[field], field=field)
    if "accounting_item" in changes and not changes["accounting_item"].strip():
        raise ValidationError("accounting_item", "must not be empty")

    update = OrderForecastUpdate(id=order.id, expected_version=order.version, **changes)

    invalidates = any(
        field in changes and changes[field] != getattr(order, field)
        for field in MATCHING_FIELDS
    )
    if not invalidates:
        return update, None

    release = pairing.release_order(order)
    if release is None:
        return update, None

    update = OrderForecastUpdate(**{**release.model_dump(exclude_unset=True), **update.model_dump(exclude_unset=True)})
    gl_update = None
    if counterpart is not None and counterpart.matched_order_forecast_id == order.id:
        gl_update = pairing.release_gl(counterpart)
    return update, gl_update


async def update_order_forecast(order_id: str, edit: OrderForecastEdit) -> OrderForecast:
    """Apply a user edit with optimistic locking and return the stored line."""
    order, counterpart = await _load(order_id)
    periods = {order.period, edit.period, counterpart.period if counterpart else None}

    async with period_locks(*[normalize_period(p) for p in periods if p]) as locked:
        order, counterpart = await _load(order_id)
        order_update, gl_update = plan_order_edit(order, edit, counterpart)

        await database.apply_reconciliation_batch(
            order_updates=[order_update.model_dump(mode="json", exclude_unset=True)],
            gl_updates=[gl_update.model_dump(mode="json", exclude_unset=True)] if gl_update else [],
            log=None,
            lock_periods=locked,
        )

    if gl_update:
        logger.info(f"Edit of order forecast {order_id} released its pairing with {gl_update.id}")

    row = await database.get_order_forecast(order_id)
    return OrderForecast(**row)


async def _load(order_id: str) -> tuple[OrderForecast, Optional[GLEntry]]:
    row = await database.get_order_forecast(order_id)
    if not row:
        raise NotFoundError(f"Order forecast {order_id} not found")
    order = OrderForecast(**row)

    counterpart = None
    if order.matched_gl_entry_id:
        rows = await database.get_gl_entries_by_ids([order.matched_gl_entry_id])
        counterpart = GLEntry(**rows[0]) if rows else None
    return order, counterpart
