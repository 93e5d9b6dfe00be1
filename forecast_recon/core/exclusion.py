# forecast_recon/core/exclusion.py

"""
Exclusion manager.

Flags GL entries as excluded from matching (with a reason) or clears the
flag. Excluding a paired entry breaks the pairing on both sides in the same
batch. No reconciliation log row is written; `exclusion_reason` is the audit.
"""

from typing import Optional
import logging

from forecast_recon.models import GLEntry, GLEntryUpdate, OrderForecast, OrderForecastUpdate
from forecast_recon.core.exceptions import ValidationError
from forecast_recon.core.locks import period_locks
from forecast_recon.core import pairing
from forecast_recon import database

logger = logging.getLogger(__name__)


def plan_exclusion(
    entries: list[GLEntry],
    counterparts: dict[str, OrderForecast],
    is_excluded: bool,
    reason: Optional[str] = None,
) -> tuple[list[OrderForecastUpdate], list[GLEntryUpdate]]:
    """Updates that set the exclusion flag and release any pairing it breaks."""
    order_updates: list[OrderForecastUpdate] = []
    gl_updates: list[GLEntryUpdate] = []

    for gl in entries:
        flags = {
            "is_excluded": is_excluded,
            "exclusion_reason": reason if is_excluded else None,
        }

        release = pairing.release_gl(gl) if is_excluded else None
        if release is None:
            gl_updates.append(GLEntryUpdate(id=gl.id, **flags))
            continue

        gl_updates.append(GLEntryUpdate(**release.model_dump(exclude_unset=True), **flags))

        order = counterparts.get(gl.matched_order_forecast_id or "")
        if order is not None and order.matched_gl_entry_id == gl.id:
            order_release = pairing.release_order(order)
            if order_release:
                order_updates.append(order_release)

    return order_updates, gl_updates


async def set_exclusion(
    gl_entry_ids: list[str],
    is_excluded: bool,
    reason: Optional[str] = None,
) -> int:
    """
    Bulk-set the exclusion flag. Returns the number of GL entries updated.

    `reason` is required when excluding and cleared when including.
    """
    ids = list(dict.fromkeys(i for i in gl_entry_ids or [] if i))
    if not ids:
        raise ValidationError("gl_entry_ids", "at least one GL entry id is required")

    reason = reason.strip() if reason else None
    if is_excluded and not reason:
        raise ValidationError("exclusion_reason", "a reason is required when excluding")

    # Periods to lock: the entries' and their counterparts'
    entries, counterparts = await _load(ids)
    periods = {g.period for g in entries} | {o.period for o in counterparts.values()}

    async with period_locks(*periods) as locked:
        entries, counterparts = await _load(ids)
        if not entries:
            return 0

        order_updates, gl_updates = plan_exclusion(entries, counterparts, is_excluded, reason)
        await database.apply_reconciliation_batch(
            order_updates=[u.model_dump(mode="json", exclude_unset=True) for u in order_updates],
            gl_updates=[u.model_dump(mode="json", exclude_unset=True) for u in gl_updates],
            log=None,
            lock_periods=locked,
        )

    logger.info(
        f"{'Excluded' if is_excluded else 'Included'} {len(gl_updates)} GL entries "
        f"({', '.join(g.id for g in entries)}); {len(order_updates)} pairings released"
    )
    return len(gl_updates)


async def _load(ids: list[str]) -> tuple[list[GLEntry], dict[str, OrderForecast]]:
    entries = [GLEntry(**row) for row in await database.get_gl_entries_by_ids(ids)]
    order_ids = sorted({g.matched_order_forecast_id for g in entries if g.matched_order_forecast_id})
    counterparts = {
        order.id: order
        for order in (OrderForecast(**row) for row in await database.get_order_forecasts_by_ids(order_ids))
    }
    return entries, counterparts
