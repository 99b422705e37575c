"""Keyed locks that serialize work on one employee's week or month."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

from hr_workflows.database import acquire_advisory_xact_lock


class KeyedLock:
    """One asyncio.Lock per key, created on demand.

    Within a process this serializes submissions for the same
    (employee, week) or payroll processing for the same (employee, month).
    When a PostgreSQL session is passed, a transaction-scoped advisory
    lock on the same key extends the guarantee across processes.

    The asyncio lock is released when the block exits, which can be
    before the caller commits. Only the advisory lock is held until the
    transaction ends, so on other dialects two transactions can still
    race to create the same row; the table's unique key then rejects the
    second one.

    Usage:
        locks = KeyedLock()
        async with locks.hold(("emp_1", "2026-02")):
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(
        self,
        key: Hashable,
        session: AsyncSession | None = None,
    ) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                if session is not None:
                    await acquire_advisory_xact_lock(session, _lock_name(key))
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # Nobody else is waiting on this key
                del self._waiters[key]
                del self._locks[key]


def _lock_name(key: Hashable) -> str:
    if isinstance(key, tuple):
        return ":".join(str(part) for part in key)
    return str(key)


# Shared by every service instance in the process
timesheet_locks = KeyedLock()
payroll_locks = KeyedLock()
