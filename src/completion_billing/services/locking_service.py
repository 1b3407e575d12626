"""Per-entity locks for read-modify-write critical sections."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class EntityLockRegistry:
    """Hands out one ``asyncio.Lock`` per ``(entity, id)`` key.

    Serializes operations on the same project or wallet inside one process.
    Across processes the unique constraints and version columns still catch
    collisions, which surface as ``ConflictError``.

    Usage:
        locks = EntityLockRegistry()

        async with locks.hold("project", project_id):
            ...  # approve task, create invoice, pay

        async with locks.hold("wallet", "freelancer", user_id):
            ...  # increment balance
    """

    def __init__(self) -> None:
        self._locks: defaultdict[tuple, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock_for(self, *key: object) -> asyncio.Lock:
        """Get the lock for a key, creating it on first use."""
        return self._locks[key]

    @asynccontextmanager
    async def hold(self, *key: object) -> AsyncIterator[None]:
        """Hold the lock for a key for the duration of the block."""
        lock = self.lock_for(*key)
        if lock.locked():
            logger.debug("Waiting for lock %s", key)
        async with lock:
            yield

    def is_locked(self, *key: object) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


# Process-wide registry used by the API layer
entity_locks = EntityLockRegistry()
