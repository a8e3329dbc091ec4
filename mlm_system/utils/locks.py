# mlm_system/utils/locks.py
"""
Keyed asyncio locks serializing writers inside one engine process.

The database is the cross-process guard (unique slot constraint, row locks
on the ancestor chain); these locks keep coroutines of one process from
interleaving partial updates.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable
import logging

logger = logging.getLogger(__name__)

VOLUME_LOCK = "volume"  # leg volumes: purchase credits, payout cycles
PLACEMENT_LOCK = "placement"  # tree slots: enrollments, holding tank placements


class LockRegistry:
    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, *keys: Hashable):
        """Acquire several keyed locks in a stable order."""
        ordered = sorted(set(keys), key=repr)
        acquired = []
        try:
            for key in ordered:
                lock = self.get(key)
                if lock.locked():
                    logger.debug(f"Waiting for lock {key!r}")
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

