# tests/test_exclusion.py

"""
Tests for excluding GL entries from matching.
"""

import asyncio
import pytest

from forecast_recon.core.exceptions import ValidationError
from forecast_recon.core.exclusion import plan_exclusion, set_exclusion
from forecast_recon.core.runner import run_reconciliation

from tests.factories import make_gl, make_order


def paired(order_id="o-1", gl_id="g-1"):
    order = make_order(
        order_id, 100000,
        reconciliation_status="matched", matched_gl_entry_id=gl_id, match_confidence=100.0,
    )
    gl = make_gl(
        gl_id, 100000,
        reconciliation_status="matched", matched_order_forecast_id=order_id, match_confidence=100.0,
    )
    return order, gl


class TestPlanExclusion:
    """Updates planned for an exclusion change."""

    def test_excluding_paired_entry_releases_both_sides(self):
        """Excluding a paired entry unpairs both sides."""
        order, gl = paired()

        order_updates, gl_updates = plan_exclusion([gl], {order.id: order}, True, "duplicate import")

        assert len(gl_updates) == 1
        gl_update = gl_updates[0]
        assert gl_update.is_excluded is True
        assert gl_update.exclusion_reason == "duplicate import"
        assert gl_update.reconciliation_status == "unmatched"
        assert gl_update.matched_order_forecast_id is None

        assert [u.id for u in order_updates] == ["o-1"]
        assert order_updates[0].matched_gl_entry_id is None
        assert order_updates[0].expected_version == order.version

    def test_excluding_unpaired_entry_only_sets_flag(self):
        """An unpaired entry only gets the flag and reason."""
        gl = make_gl("g-1", 100000)

        order_updates, gl_updates = plan_exclusion([gl], {}, True, "reversal")

        assert order_updates == []
        assert gl_updates[0].model_dump(exclude_unset=True) == {
            "id": "g-1",
            "is_excluded": True,
            "exclusion_reason": "reversal",
        }

    def test_counterpart_pointing_elsewhere_is_left_alone(self):
        """An order that has moved on to another GL entry is not touched."""
        _, gl = paired()
        other = make_order("o-1", 100000, reconciliation_status="matched", matched_gl_entry_id="g-2")

        order_updates, _ = plan_exclusion([gl], {other.id: other}, True, "reversal")

        assert order_updates == []

    def test_including_clears_reason(self):
        """Re-including clears the reason."""
        gl = make_gl("g-1", 100000, is_excluded=True, exclusion_reason="reversal")

        _, gl_updates = plan_exclusion([gl], {}, False)

        assert gl_updates[0].is_excluded is False
        assert gl_updates[0].exclusion_reason is None


class TestSetExclusion:
    """Exclusion changes against storage."""

    def test_requires_ids(self, fake_db):
        """An empty id list is rejected."""
        with pytest.raises(ValidationError) as exc:
            asyncio.run(set_exclusion([], True, "reversal"))

        assert exc.value.field == "gl_entry_ids"
        assert fake_db.batches == []

    def test_requires_reason_when_excluding(self, fake_db):
        """Excluding without a reason is rejected."""
        fake_db.add_gl("g-1", "100000")

        with pytest.raises(ValidationError) as exc:
            asyncio.run(set_exclusion(["g-1"], True, "   "))

        assert exc.value.field == "exclusion_reason"
        assert fake_db.batches == []

    def test_unknown_ids(self, fake_db):
        """Unknown ids update nothing."""
        assert asyncio.run(set_exclusion(["missing"], True, "reversal")) == 0
        assert fake_db.batches == []

    def test_exclusion_breaks_pairing_and_writes_no_log(self, fake_db):
        """Exclusion releases the pairing in one batch and writes no log row."""
        fake_db.add_order(
            "o-1", "100000",
            reconciliation_status="matched", matched_gl_entry_id="g-1", match_confidence=100.0,
        )
        fake_db.add_gl(
            "g-1", "100000",
            reconciliation_status="matched", matched_order_forecast_id="o-1", match_confidence=100.0,
        )

        updated = asyncio.run(set_exclusion(["g-1", "g-1"], True, "duplicate import"))

        assert updated == 1
        assert fake_db.gl["g-1"]["is_excluded"] is True
        assert fake_db.gl["g-1"]["matched_order_forecast_id"] is None
        assert fake_db.orders["o-1"]["reconciliation_status"] == "unmatched"
        assert fake_db.orders["o-1"]["matched_gl_entry_id"] is None
        assert fake_db.logs == []
        assert fake_db.batches[0]["lock_periods"] == ["2025-04"]

    def test_pairing_committed_after_the_read_is_released(self, fake_db):
        """A pairing written between the exclusion's read and its commit is undone."""
        fake_db.add_order("o-1", "100000")
        fake_db.add_gl("g-1", "100000")

        def run_pairs_meanwhile():
            fake_db.orders["o-1"].update(
                reconciliation_status="matched", matched_gl_entry_id="g-1", match_confidence=100.0, version=2,
            )
            fake_db.gl["g-1"].update(
                reconciliation_status="matched", matched_order_forecast_id="o-1", match_confidence=100.0,
            )
        fake_db.before_apply = run_pairs_meanwhile

        updated = asyncio.run(set_exclusion(["g-1"], True, "reversal"))

        assert updated == 1
        assert fake_db.batches[0]["order_updates"] == []
        assert fake_db.gl["g-1"]["is_excluded"] is True
        assert fake_db.gl["g-1"]["reconciliation_status"] == "unmatched"
        assert fake_db.gl["g-1"]["matched_order_forecast_id"] is None
        assert fake_db.orders["o-1"]["reconciliation_status"] == "unmatched"
        assert fake_db.orders["o-1"]["matched_gl_entry_id"] is None
        assert fake_db.orders["o-1"]["version"] == 3

    def test_excluded_entry_skipped_by_next_run(self, fake_db):
        """The next run leaves an excluded entry alone."""
        fake_db.add_order("o-1", "100000")
        fake_db.add_gl("g-1", "100000")
        asyncio.run(set_exclusion(["g-1"], True, "reversal"))

        log, result = asyncio.run(run_reconciliation("2025-04"))

        assert log.matched_count == 0
        assert log.excluded_gl_count == 1
        assert result.unmatched_order_ids == ["o-1"]

    def test_reinclude_makes_entry_eligible(self, fake_db):
        """A re-included entry pairs again on the next run."""
        fake_db.add_order("o-1", "100000")
        fake_db.add_gl("g-1", "100000", is_excluded=True, exclusion_reason="reversal")

        asyncio.run(set_exclusion(["g-1"], False))
        log, _ = asyncio.run(run_reconciliation("2025-04"))

        assert fake_db.gl["g-1"]["exclusion_reason"] is None
        assert log.matched_count == 1
