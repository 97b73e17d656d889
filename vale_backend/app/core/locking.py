"""
Per-resource mutual exclusion for ledger operations.

Debits read a balance and then write an entry; two of them running against
the same user must not both see the same stale balance. Each operation holds
an in-process asyncio lock per key for the lifetime of its database
transaction, and the services additionally take row locks
(SELECT ... FOR UPDATE) so separate worker processes serialize on PostgreSQL.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import Dict, AsyncIterator


def user_key(user_id: int) -> str:
    return f"user:{user_id}"


def sale_key(transaction_id: int) -> str:
    return f"sale:{transaction_id}"


def transfer_key(transfer_id: int) -> str:
    return f"transfer:{transfer_id}"


def withdrawal_key(withdrawal_id: int) -> str:
    return f"withdrawal:{withdrawal_id}"


class LockRegistry:
    """Lazily created asyncio locks keyed by resource name."""

    def __init__(self):
        # asyncio locks are bound to the loop that first waits on them
        self._locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, asyncio.Lock]]" = (
            weakref.WeakKeyDictionary()
        )

    def _loop_locks(self) -> Dict[str, asyncio.Lock]:
        loop = asyncio.get_running_loop()
        locks = self._locks.get(loop)
        if locks is None:
            locks = {}
            self._locks[loop] = locks
        return locks

    def _lock_for(self, key: str) -> asyncio.Lock:
        locks = self._loop_locks()
        lock = locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            locks[key] = lock
        return lock

    def is_locked(self, key: str) -> bool:
        lock = self._loop_locks().get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """
        Acquire every lock in ``keys``.

        Keys are de-duplicated and taken in sorted order so two operations
        touching the same pair of users cannot deadlock.
        """
        ordered = sorted(set(keys))
        acquired = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


# Process-wide registry shared by all services
resource_locks = LockRegistry()
