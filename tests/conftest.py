# tests/conftest.py

"""
Shared fixtures.

`fake_db` replaces the Supabase-backed functions in forecast_recon.database
with an in-memory store that honours the batch contract: version and
exclusion checks first, then every write, then the log row, or nothing at
all. Excluding a GL entry releases whatever pairing it holds at commit.
"""

import asyncio
import copy
import os
from datetime import datetime, timedelta

import pytest

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")

from forecast_recon import database  # noqa: E402
from forecast_recon.core import locks  # noqa: E402
from forecast_recon.core.exceptions import ConflictError  # noqa: E402


BASE_TIME = datetime(2025, 4, 1, 9, 0, 0)


class FakeDatabase:
    def __init__(self):
        self.orders: dict[str, dict] = {}
        self.gl: dict[str, dict] = {}
        self.logs: list[dict] = []
        self.batches: list[dict] = []
        self.fail_with: Exception | None = None
        self.before_apply = None
        self.load_delay: float = 0.0
        self.events: list[tuple[str, object]] = []
        self._seq = 0

    # ============================================
    # Seeding
    # ============================================

    def _next_time(self) -> datetime:
        self._seq += 1
        return BASE_TIME + timedelta(minutes=self._seq)

    def add_order(self, id: str, amount, **fields) -> dict:
        row = {
            "id": id,
            "accounting_period": "2025-04",
            "accounting_item": "売上高",
            "description": "",
            "amount": amount,
            "period": "2025-04",
            "reconciliation_status": "unmatched",
            "matched_gl_entry_id": None,
            "match_confidence": None,
            "version": 1,
            "created_at": self._next_time(),
        }
        row.update(fields)
        self.orders[id] = row
        return row

    def add_gl(self, id: str, amount, **fields) -> dict:
        row = {
            "id": id,
            "voucher_no": f"V-{id}",
            "transaction_date": "2025-04-30",
            "account_code": "4100",
            "account_name": "売上高",
            "amount": amount,
            "debit_credit": "credit",
            "description": None,
            "period": "2025-04",
            "reconciliation_status": "unmatched",
            "matched_order_forecast_id": None,
            "match_confidence": None,
            "is_excluded": False,
            "exclusion_reason": None,
            "created_at": self._next_time(),
        }
        row.update(fields)
        self.gl[id] = row
        return row

    # ============================================
    # Reads
    # ============================================

    @staticmethod
    def _sorted(rows) -> list[dict]:
        return [copy.deepcopy(r) for r in sorted(rows, key=lambda r: (r["created_at"], r["id"]))]

    async def get_order_forecasts(self, period=None, status=None):
        self.events.append(("load", period))
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        rows = [
            r for r in self.orders.values()
            if (period is None or r["period"] == period)
            and (status is None or r["reconciliation_status"] == status)
        ]
        return self._sorted(rows)

    async def get_order_forecast(self, order_id):
        row = self.orders.get(order_id)
        return copy.deepcopy(row) if row else None

    async def get_order_forecasts_by_ids(self, ids):
        return self._sorted(self.orders[i] for i in ids if i in self.orders)

    async def get_gl_entries(self, period=None, status=None, include_excluded=True):
        rows = [
            r for r in self.gl.values()
            if (period is None or r["period"] == period)
            and (status is None or r["reconciliation_status"] == status)
            and (include_excluded or not r["is_excluded"])
        ]
        return self._sorted(rows)

    async def get_gl_entries_by_ids(self, ids):
        return self._sorted(self.gl[i] for i in ids if i in self.gl)

    async def get_reconciliation_logs(
        self,
        period=None,
        period_from=None,
        period_to=None,
        limit=20,
        offset=0,
        sort_by="executed_at",
        sort_order="desc",
    ):
        rows = [
            r for r in self.logs
            if (period is None or r["period"] == period)
            and (period_from is None or r["period"] >= period_from)
            and (period_to is None or r["period"] <= period_to)
        ]
        rows.sort(key=lambda r: r[sort_by], reverse=sort_order == "desc")
        return copy.deepcopy(rows[offset:offset + limit]), len(rows)

    async def get_reconciliation_log(self, log_id):
        for row in self.logs:
            if row["id"] == log_id:
                return copy.deepcopy(row)
        return None

    async def get_latest_reconciliation_log(self, period=None):
        rows = [r for r in self.logs if period is None or r["period"] == period]
        if not rows:
            return None
        return copy.deepcopy(max(rows, key=lambda r: r["executed_at"]))

    async def get_all_reconciliation_logs(self):
        return copy.deepcopy(sorted(self.logs, key=lambda r: r["executed_at"], reverse=True))

    # ============================================
    # Batch
    # ============================================

    async def apply_reconciliation_batch(
        self,
        order_updates,
        gl_updates,
        log=None,
        lock_periods=None,
        timeout_ms=None,
    ):
        self.events.append(("commit", lock_periods))
        self.batches.append({
            "order_updates": order_updates,
            "gl_updates": gl_updates,
            "log": log,
            "lock_periods": lock_periods,
            "timeout_ms": timeout_ms,
        })
        if self.before_apply:
            self.before_apply()
        if self.fail_with:
            raise self.fail_with

        for update in order_updates:
            row = self.orders.get(update["id"])
            if row is None or row["version"] != update["expected_version"]:
                raise ConflictError(f"Order forecast {update['id']} was modified concurrently")

        for update in gl_updates:
            row = self.gl.get(update["id"])
            if row and row["is_excluded"] and update.get("matched_order_forecast_id"):
                raise ConflictError(f"GL entry {update['id']} was excluded concurrently")

        for update in order_updates:
            row = self.orders[update["id"]]
            row.update({k: v for k, v in update.items() if k not in ("id", "expected_version")})
            row["version"] += 1

        for update in gl_updates:
            row = self.gl[update["id"]]
            row.update({k: v for k, v in update.items() if k != "id"})
            if update.get("is_excluded"):
                self._release_excluded(row)

        if log is None:
            return None

        saved = {"id": f"log-{len(self.logs) + 1}", **log}
        self.logs.append(saved)
        return copy.deepcopy(saved)

    def _release_excluded(self, gl_row):
        for order in self.orders.values():
            if order["matched_gl_entry_id"] == gl_row["id"]:
                order.update(reconciliation_status="unmatched", matched_gl_entry_id=None, match_confidence=None)
                order["version"] += 1
        gl_row.update(reconciliation_status="unmatched", matched_order_forecast_id=None, match_confidence=None)


@pytest.fixture(autouse=True)
def reset_locks():
    locks._locks.clear()
    locks._users.clear()
    yield
    locks._locks.clear()
    locks._users.clear()


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeDatabase()
    for name in (
        "get_order_forecasts",
        "get_order_forecast",
        "get_order_forecasts_by_ids",
        "get_gl_entries",
        "get_gl_entries_by_ids",
        "get_reconciliation_logs",
        "get_reconciliation_log",
        "get_latest_reconciliation_log",
        "get_all_reconciliation_logs",
        "apply_reconciliation_batch",
    ):
        monkeypatch.setattr(database, name, getattr(db, name))
    return db
