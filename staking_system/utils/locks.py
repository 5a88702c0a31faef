# staking_system/utils/locks.py
"""
Per-participant serialization for balance and cap mutations.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Iterable


class ParticipantLocks:
    """Registry of asyncio locks keyed by userID."""

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}

    def lockFor(self, userId: int) -> asyncio.Lock:
        lock = self._locks.get(userId)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[userId] = lock
        return lock

    @asynccontextmanager
    async def hold(self, userIds: Iterable[int]):
        """Acquire several participant locks in ascending id order (no deadlocks)."""
        ordered = sorted(set(u for u in userIds if u is not None))
        acquired = []
        try:
            for userId in ordered:
                lock = self.lockFor(userId)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


# Shared across services within one process
participantLocks = ParticipantLocks()
