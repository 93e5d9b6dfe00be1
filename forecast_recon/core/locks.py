# forecast_recon/core/locks.py

"""
Per-period exclusive sections.

Within this process a run, an exclusion change or an edit holds the lock of
every period it reads and writes. Across processes the batch RPC takes the
matching Postgres advisory locks.

A period's lock lives only while someone holds or waits for it.
"""

from contextlib import asynccontextmanager
import asyncio

_locks: dict[str, asyncio.Lock] = {}
_users: dict[str, int] = {}


def _checkout(period: str) -> asyncio.Lock:
    lock = _locks.get(period)
    if lock is None:
        lock = _locks[period] = asyncio.Lock()
    _users[period] = _users.get(period, 0) + 1
    return lock


def _checkin(period: str) -> None:
    _users[period] -= 1
    if _users[period] == 0:
        del _users[period]
        del _locks[period]


def is_locked(period: str) -> bool:
    lock = _locks.get(period)
    return lock is not None and lock.locked()


@asynccontextmanager
async def period_locks(*periods: str):
    """Hold the locks of all given periods, acquired in sorted order."""
    ordered = sorted(set(p for p in periods if p))
    pending = [_checkout(period) for period in ordered]
    acquired: list[asyncio.Lock] = []
    try:
        for lock in pending:
            await lock.acquire()
            acquired.append(lock)
        yield ordered
    finally:
        for lock in reversed(acquired):
            lock.release()
        for period in ordered:
            _checkin(period)
