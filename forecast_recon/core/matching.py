# forecast_recon/core/matching.py

"""
Core reconciliation engine.

Pairs order forecast lines with the GL postings that realized them, for one
period. Deterministic and greedy so an auditor can replay it by hand:
1. Build the pool (drop excluded GL, set aside valid out-of-period pairs,
   report broken pairings)
2. Exact pass, first exact candidate wins, in creation order
3. Fuzzy pass, candidates accepted by descending confidence
4. Everything left is unmatched

Every run recomputes the whole period from scratch. Only entries whose
stored pairing differs from the computed one produce an update.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional
import logging

from forecast_recon.models import (
    Anomaly,
    GLEntry,
    GLEntryUpdate,
    MatchPair,
    OrderForecast,
    OrderForecastUpdate,
    RunMode,
)
from forecast_recon.core.confidence import amount_tolerance, score_candidate
from forecast_recon.core.exceptions import ValidationError
from forecast_recon.core.normalizers import normalize_period
from forecast_recon.core import pairing
from forecast_recon.config import Settings, get_settings

logger = logging.getLogger(__name__)

RUN_MODES = ("exact", "fuzzy")


class ReconciliationResult:
    """Result of one reconciliation run. Counters are local to the run."""

    def __init__(self, period: str, mode: RunMode):
        self.period = period
        self.mode = mode
        self.pairs: list[MatchPair] = []
        self.unmatched_order_ids: list[str] = []
        self.unmatched_gl_ids: list[str] = []
        self.order_updates: list[OrderForecastUpdate] = []
        self.gl_updates: list[GLEntryUpdate] = []
        self.anomalies: list[Anomaly] = []
        self.preserved_pair_count: int = 0
        self.total_order_count: int = 0
        self.total_gl_count: int = 0
        self.excluded_gl_count: int = 0
        self.duration_ms: int = 0

    @property
    def matched_count(self) -> int:
        return len([p for p in self.pairs if p.status == "matched"])

    @property
    def fuzzy_matched_count(self) -> int:
        return len([p for p in self.pairs if p.status == "fuzzy"])

    @property
    def unmatched_order_count(self) -> int:
        return len(self.unmatched_order_ids)

    @property
    def unmatched_gl_count(self) -> int:
        return len(self.unmatched_gl_ids)

    @property
    def has_changes(self) -> bool:
        return bool(self.order_updates or self.gl_updates)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "period": self.period,
            "mode": self.mode,
            "pairs": [p.model_dump(mode="json") for p in self.pairs],
            "matched_count": self.matched_count,
            "fuzzy_matched_count": self.fuzzy_matched_count,
            "unmatched_order_count": self.unmatched_order_count,
            "unmatched_gl_count": self.unmatched_gl_count,
            "total_order_count": self.total_order_count,
            "total_gl_count": self.total_gl_count,
            "excluded_gl_count": self.excluded_gl_count,
            "anomalies": [a.model_dump() for a in self.anomalies],
            "duration_ms": self.duration_ms,
        }


def reconcile(
    orders: list[OrderForecast],
    gl_entries: list[GLEntry],
    period: str,
    mode: str = "fuzzy",
    outside_orders: Optional[dict[str, OrderForecast]] = None,
    outside_gl: Optional[dict[str, GLEntry]] = None,
    settings: Optional[Settings] = None,
    accept_threshold: Optional[float] = None,
    tolerance_percent: Optional[float] = None,
) -> ReconciliationResult:
    """
    Main reconciliation function.

    `orders` / `gl_entries` are everything stored for the period, excluded GL
    entries included. `outside_orders` / `outside_gl` hold counterparts from
    other periods that pool entries still reference, keyed by id.

    Pure: computes pairings and the updates to persist, writes nothing.
    """
    start_time = datetime.now()
    period = normalize_period(period)
    if mode not in RUN_MODES:
        raise ValidationError("mode", f"mode must be one of {', '.join(RUN_MODES)}")
    if settings is None:
        settings = get_settings()

    result = ReconciliationResult(period, mode)

    # ============================================
    # Step 1: Build the pool
    # ============================================
    pool_orders, pool_gl = _build_pool(
        orders, gl_entries, period, outside_orders or {}, outside_gl or {}, result
    )
    result.total_order_count = len(pool_orders)
    result.total_gl_count = len(pool_gl)

    logger.info(
        f"Reconciling {period} ({mode}): {len(pool_orders)} order lines, "
        f"{len(pool_gl)} GL entries, {result.excluded_gl_count} excluded"
    )

    remaining_orders = sorted(pool_orders, key=_stable_key)
    remaining_gl = sorted(pool_gl, key=_stable_key)
    paired: dict[str, tuple[GLEntry, MatchPair]] = {}

    # ============================================
    # Step 2: Exact pass
    # ============================================
    gl_by_amount: dict[Decimal, list[GLEntry]] = defaultdict(list)
    for gl in remaining_gl:
        gl_by_amount[gl.amount].append(gl)

    taken_gl: set[str] = set()
    for order in remaining_orders:
        for gl in gl_by_amount.get(order.amount, []):
            if gl.id in taken_gl:
                continue

            score = score_candidate(order, gl, settings=settings)
            if score.classification == "exact":
                paired[order.id] = (gl, MatchPair(
                    order_forecast_id=order.id,
                    gl_entry_id=gl.id,
                    status="matched",
                    confidence=score.confidence,
                    amount_diff=score.amount_diff,
                    date_diff_days=score.date_diff_days,
                ))
                taken_gl.add(gl.id)
                break

    remaining_orders = [o for o in remaining_orders if o.id not in paired]
    remaining_gl = [g for g in remaining_gl if g.id not in taken_gl]
    logger.info(f"Exact pass for {period}: {len(paired)} pairs")

    # ============================================
    # Step 3: Fuzzy pass
    # ============================================
    if mode == "fuzzy":
        fuzzy_pairs = _fuzzy_pass(
            remaining_orders, remaining_gl, settings, accept_threshold, tolerance_percent
        )
        for order, gl, pair_ in fuzzy_pairs:
            paired[order.id] = (gl, pair_)
            taken_gl.add(gl.id)
        remaining_orders = [o for o in remaining_orders if o.id not in paired]
        remaining_gl = [g for g in remaining_gl if g.id not in taken_gl]
        logger.info(f"Fuzzy pass for {period}: {len(fuzzy_pairs)} pairs")

    # ============================================
    # Step 4: Final states and updates
    # ============================================
    for order in sorted(pool_orders, key=_stable_key):
        if order.id not in paired:
            continue
        gl, pair_ = paired[order.id]
        result.pairs.append(pair_)

        order_update, gl_update = pairing.pair(order, gl, pair_.status, pair_.confidence)
        if not pairing.unchanged(order, pair_.status, gl.id, pair_.confidence):
            result.order_updates.append(order_update)
        if not pairing.unchanged(gl, pair_.status, order.id, pair_.confidence):
            result.gl_updates.append(gl_update)

    for order in remaining_orders:
        result.unmatched_order_ids.append(order.id)
        update = pairing.release_order(order)
        if update:
            result.order_updates.append(update)

    for gl in remaining_gl:
        result.unmatched_gl_ids.append(gl.id)
        update = pairing.release_gl(gl)
        if update:
            result.gl_updates.append(update)

    result.duration_ms = int((datetime.now() - start_time).total_seconds() * 1000)
    return result


def _build_pool(
    orders: list[OrderForecast],
    gl_entries: list[GLEntry],
    period: str,
    outside_orders: dict[str, OrderForecast],
    outside_gl: dict[str, GLEntry],
    result: ReconciliationResult,
) -> tuple[list[OrderForecast], list[GLEntry]]:
    """Select eligible entries and report invariant violations."""
    orders_in_period = [o for o in orders if o.period == period]
    gl_in_period = [g for g in gl_entries if g.period == period]
    order_by_id = {o.id: o for o in orders_in_period}
    gl_by_id = {g.id: g for g in gl_in_period}

    pool_orders: list[OrderForecast] = []
    pool_gl: list[GLEntry] = []

    # Excluded GL entries never hold a pairing
    for gl in gl_in_period:
        if not gl.is_excluded:
            continue
        result.excluded_gl_count += 1
        update = pairing.release_gl(gl)
        if update:
            _report(result, "excluded_entry_paired", "gl_entry", gl.id,
                    f"excluded GL entry still references order {gl.matched_order_forecast_id}")
            result.gl_updates.append(update)

    for order in orders_in_period:
        counterpart_id = order.matched_gl_entry_id
        if counterpart_id is None:
            if order.reconciliation_status != "unmatched":
                _report(result, "status_reference_mismatch", "order_forecast", order.id,
                        f"status {order.reconciliation_status} without a GL reference")
            pool_orders.append(order)
            continue

        if order.reconciliation_status == "unmatched":
            _report(result, "status_reference_mismatch", "order_forecast", order.id,
                    f"unmatched but references GL entry {counterpart_id}")
            pool_orders.append(order)
            continue

        gl = gl_by_id.get(counterpart_id)
        if gl is not None:
            if not pairing.is_symmetric(order, gl):
                _report(result, "one_sided_pairing", "order_forecast", order.id,
                        f"references GL entry {counterpart_id} which does not reference it back")
            pool_orders.append(order)
            continue

        outside = outside_gl.get(counterpart_id)
        if outside is not None and pairing.is_symmetric(order, outside):
            result.preserved_pair_count += 1
            continue

        _report(result, "dangling_reference", "order_forecast", order.id,
                f"references GL entry {counterpart_id} outside the period with no valid pairing")
        pool_orders.append(order)

    for gl in gl_in_period:
        if gl.is_excluded:
            continue

        counterpart_id = gl.matched_order_forecast_id
        if counterpart_id is None:
            if gl.reconciliation_status != "unmatched":
                _report(result, "status_reference_mismatch", "gl_entry", gl.id,
                        f"status {gl.reconciliation_status} without an order reference")
            pool_gl.append(gl)
            continue

        if gl.reconciliation_status == "unmatched":
            _report(result, "status_reference_mismatch", "gl_entry", gl.id,
                    f"unmatched but references order {counterpart_id}")
            pool_gl.append(gl)
            continue

        order = order_by_id.get(counterpart_id)
        if order is not None:
            if not pairing.is_symmetric(order, gl):
                _report(result, "one_sided_pairing", "gl_entry", gl.id,
                        f"references order {counterpart_id} which does not reference it back")
            pool_gl.append(gl)
            continue

        outside = outside_orders.get(counterpart_id)
        if outside is not None and pairing.is_symmetric(outside, gl):
            continue

        _report(result, "dangling_reference", "gl_entry", gl.id,
                f"references order {counterpart_id} outside the period with no valid pairing")
        pool_gl.append(gl)

    return pool_orders, pool_gl


def _fuzzy_pass(
    orders: list[OrderForecast],
    gl_entries: list[GLEntry],
    settings: Settings,
    accept_threshold: Optional[float],
    tolerance_percent: Optional[float],
) -> list[tuple[OrderForecast, GLEntry, MatchPair]]:
    """
    Greedy maximum-confidence-first assignment.

    Ties are broken by ascending order id, then ascending GL id.
    Not a globally optimal assignment.
    """
    candidates = []
    for order in orders:
        tolerance = amount_tolerance(order.amount, settings, tolerance_percent)
        for gl in gl_entries:
            # Cheap amount filter before full scoring
            if abs(order.amount - gl.amount) > tolerance:
                continue

            score = score_candidate(
                order, gl,
                settings=settings,
                accept_threshold=accept_threshold,
                tolerance_percent=tolerance_percent,
            )
            if score.classification == "fuzzy":
                candidates.append((order, gl, score))

    candidates.sort(key=lambda c: (-c[2].confidence, c[0].id, c[1].id))

    accepted: list[tuple[OrderForecast, GLEntry, MatchPair]] = []
    taken_orders: set[str] = set()
    taken_gl: set[str] = set()

    for order, gl, score in candidates:
        if order.id in taken_orders or gl.id in taken_gl:
            continue

        accepted.append((order, gl, MatchPair(
            order_forecast_id=order.id,
            gl_entry_id=gl.id,
            status="fuzzy",
            confidence=score.confidence,
            amount_diff=score.amount_diff,
            date_diff_days=score.date_diff_days,
        )))
        taken_orders.add(order.id)
        taken_gl.add(gl.id)

    return accepted


def _stable_key(entry: OrderForecast | GLEntry) -> tuple[float, str]:
    """Ascending creation time, then id. Missing timestamps sort first."""
    created = entry.created_at.timestamp() if entry.created_at else float("-inf")
    return (created, entry.id)


def _report(
    result: ReconciliationResult,
    anomaly_type: str,
    entity: str,
    entity_id: str,
    detail: str,
) -> None:
    anomaly = Anomaly(type=anomaly_type, entity=entity, entity_id=entity_id, detail=detail)
    result.anomalies.append(anomaly)
    logger.warning(f"Reconciliation anomaly in {result.period}: {entity} {entity_id} {detail}")
