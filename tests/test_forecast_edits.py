# tests/test_forecast_edits.py

"""
Tests for versioned order forecast edits.
"""

import asyncio
import pytest
from decimal import Decimal

from forecast_recon.core.exceptions import ConflictError, NotFoundError, ValidationError
from forecast_recon.core.forecast_edits import plan_order_edit, update_order_forecast
from forecast_recon.models import OrderForecastEdit

from tests.factories import make_gl, make_order


def seed_pair(fake_db):
    fake_db.add_order(
        "o-1", "100000",
        reconciliation_status="matched", matched_gl_entry_id="g-1", match_confidence=100.0,
    )
    fake_db.add_gl(
        "g-1", "100000",
        reconciliation_status="matched", matched_order_forecast_id="o-1", match_confidence=100.0,
    )


class TestPlanOrderEdit:
    """Updates planned for an edit."""

    def test_stale_version(self):
        """An edit against an old version is a retryable conflict."""
        order = make_order("o-1", 100000, version=4)

        with pytest.raises(ConflictError) as exc:
            plan_order_edit(order, OrderForecastEdit(version=3, remarks="late"))

        assert exc.value.entity_id == "o-1"
        assert exc.value.retryable

    def test_remarks_keep_pairing(self):
        """Editing remarks leaves the pairing in place."""
        order = make_order("o-1", 100000, reconciliation_status="matched", matched_gl_entry_id="g-1")

        update, gl_update = plan_order_edit(order, OrderForecastEdit(version=1, remarks="confirmed"))

        assert gl_update is None
        assert update.model_dump(exclude_unset=True) == {
            "id": "o-1",
            "expected_version": 1,
            "remarks": "confirmed",
        }

    def test_amount_change_releases_pairing(self):
        """Changing the amount unpairs both sides."""
        order = make_order(
            "o-1", 100000,
            reconciliation_status="matched", matched_gl_entry_id="g-1", match_confidence=100.0,
        )
        gl = make_gl(
            "g-1", 100000,
            reconciliation_status="matched", matched_order_forecast_id="o-1", match_confidence=100.0,
        )

        update, gl_update = plan_order_edit(order, OrderForecastEdit(version=1, amount=Decimal("120000")), gl)

        assert update.amount == Decimal("120000")
        assert update.reconciliation_status == "unmatched"
        assert update.matched_gl_entry_id is None
        assert gl_update.id == "g-1"
        assert gl_update.matched_order_forecast_id is None

    def test_same_value_is_not_a_change(self):
        """Resubmitting the current amount keeps the pairing."""
        order = make_order("o-1", 100000, reconciliation_status="matched", matched_gl_entry_id="g-1")

        _, gl_update = plan_order_edit(order, OrderForecastEdit(version=1, amount=Decimal("100000")))

        assert gl_update is None

    def test_period_normalized(self):
        """The edited period is normalized."""
        order = make_order("o-1", 100000)

        update, _ = plan_order_edit(order, OrderForecastEdit(version=1, period="2025/5"))

        assert update.period == "2025-05"

    def test_empty_accounting_item(self):
        """A blank accounting item is rejected."""
        order = make_order("o-1", 100000)

        with pytest.raises(ValidationError) as exc:
            plan_order_edit(order, OrderForecastEdit(version=1, accounting_item="  "))

        assert exc.value.field == "accounting_item"


class TestUpdateOrderForecast:
    """Edits against storage."""

    def test_unknown_id(self, fake_db):
        """Editing a missing line is a not-found error."""
        with pytest.raises(NotFoundError):
            asyncio.run(update_order_forecast("missing", OrderForecastEdit(version=1)))

    def test_edit_releases_and_bumps_version(self, fake_db):
        """A matching-field edit releases the pair and bumps the version."""
        seed_pair(fake_db)

        forecast = asyncio.run(update_order_forecast(
            "o-1", OrderForecastEdit(version=1, description="保守 (増額)", amount=Decimal("110000")),
        ))

        assert forecast.version == 2
        assert forecast.amount == Decimal("110000")
        assert forecast.reconciliation_status == "unmatched"
        assert fake_db.gl["g-1"]["reconciliation_status"] == "unmatched"
        assert fake_db.logs == []

    def test_stale_edit_writes_nothing(self, fake_db):
        """A stale edit is refused before any write."""
        seed_pair(fake_db)
        fake_db.orders["o-1"]["version"] = 5

        with pytest.raises(ConflictError):
            asyncio.run(update_order_forecast("o-1", OrderForecastEdit(version=1, remarks="x")))

        assert fake_db.batches == []
        assert "remarks" not in fake_db.orders["o-1"]
