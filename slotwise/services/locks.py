"""Per-staff serialization of the booking check-then-insert sequence.

Within one process an ``asyncio.Lock`` per staff id orders concurrent
callers. On PostgreSQL a transaction-scoped advisory lock keyed by the staff
id extends that across worker processes; it is released when the caller
commits or rolls back, so callers must finish the unit of work inside the
``staff_booking_lock`` block.
"""

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# First key of the two-int advisory lock, keeps booking locks apart from others
BOOKING_LOCK_NAMESPACE = 0x51_07


class StaffLockRegistry:
    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, staff_id: int) -> asyncio.Lock:
        lock = self._locks.get(staff_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[staff_id] = lock
        return lock


staff_locks = StaffLockRegistry()


def _dialect_name(session: AsyncSession) -> str:
    bind = session.bind
    return bind.dialect.name if bind is not None else ""


@asynccontextmanager
async def staff_booking_lock(session: AsyncSession, staff_id: int) -> AsyncIterator[None]:
    async with staff_locks.get(staff_id):
        if _dialect_name(session) == "postgresql":
            await session.execute(
                text("SELECT pg_advisory_xact_lock(:ns, :key)"),
                {"ns": BOOKING_LOCK_NAMESPACE, "key": int(staff_id) % 2147483647},
            )
            logger.debug("Advisory lock acquired for staff=%s", staff_id)
        yield
