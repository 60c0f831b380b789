"""Per-entity merge locks.

Merges that share a member must not run at the same time. Locks are taken in
ascending id order, so two merges with overlapping groups can never wait on
each other in a cycle. A lock that is not obtained within the bounded wait
(no wait by default) fails the merge with ConcurrencyError before anything is
written.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import AsyncExitStack, asynccontextmanager

from entity_consolidation.errors import ConcurrencyError

logger = logging.getLogger(__name__)


class EntityLockTable:
    """One asyncio.Lock per entity id, kept only while some merge uses it.

    Owned by a ConsolidationEngine instance; every merge in the process goes
    through the same table. Each entry counts the tasks holding or waiting on
    its lock and is dropped when the count reaches zero.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, entity_id: int) -> bool:
        lock = self._locks.get(entity_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire(self, entity_ids: Iterable[int], *, timeout: float) -> AsyncIterator[None]:
        """Hold the locks of all `entity_ids` for the duration of the block."""
        ordered = sorted(set(entity_ids))
        async with AsyncExitStack() as stack:
            for entity_id in ordered:
                lock = self._checkout(entity_id)
                stack.callback(self._checkin, entity_id)
                await self._acquire_one(lock, entity_id, timeout)
                stack.callback(lock.release)
            yield

    def _checkout(self, entity_id: int) -> asyncio.Lock:
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = self._locks[entity_id] = asyncio.Lock()
        self._users[entity_id] = self._users.get(entity_id, 0) + 1
        return lock

    def _checkin(self, entity_id: int) -> None:
        remaining = self._users[entity_id] - 1
        if remaining:
            self._users[entity_id] = remaining
        else:
            del self._users[entity_id]
            del self._locks[entity_id]

    async def _acquire_one(self, lock: asyncio.Lock, entity_id: int, timeout: float) -> None:
        if not lock.locked():
            await lock.acquire()
            return

        if timeout > 0:
            try:
                await asyncio.wait_for(lock.acquire(), timeout)
                return
            except TimeoutError:
                pass

        logger.warning("Entity %d is held by another merge (waited %.2fs)", entity_id, timeout)
        raise ConcurrencyError(
            f"Entity {entity_id} is being merged by another request",
            entity_id=entity_id,
        )
