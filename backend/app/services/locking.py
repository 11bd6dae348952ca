"""
Per-entity mutual exclusion for workflow mutations.

Two layers:
- an in-process keyed ``asyncio.Lock`` registry so same-entity operations
  handled by one worker run one at a time;
- row locks (``SELECT ... FOR UPDATE``) plus the ``version`` column on the
  mapped tables, which catches writers in other processes. A flush that
  loses the version race is reported as ConcurrentModificationError.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Iterable, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConcurrentModificationError
from app.core.logging_config import logger


LockKey = Tuple[str, str]


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class EntityLockRegistry:
    """
    Hands out one asyncio.Lock per (entity_type, entity_id).

    Bookkeeping happens between awaits, so it needs no guard of its own.
    Entries are dropped once nobody holds or waits on them.
    """

    def __init__(self):
        self._entries: Dict[LockKey, _Entry] = {}

    def _checkout(self, key: LockKey) -> _Entry:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.holders += 1
        return entry

    def _release(self, key: LockKey, entry: _Entry) -> None:
        entry.holders -= 1
        if entry.holders == 0 and self._entries.get(key) is entry:
            del self._entries[key]

    @asynccontextmanager
    async def hold(self, entity_type: str, entity_id: str) -> AsyncIterator[None]:
        async with self.hold_many([(entity_type, entity_id)]):
            yield

    @asynccontextmanager
    async def hold_many(self, keys: Iterable[LockKey]) -> AsyncIterator[None]:
        """Acquire several entity locks in a fixed order so two callers cannot deadlock"""
        ordered = sorted({(t, str(i)) for t, i in keys})
        acquired = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                try:
                    await entry.lock.acquire()
                except BaseException:
                    self._release(key, entry)
                    raise
                acquired.append((key, entry))
            yield
        finally:
            for key, entry in reversed(acquired):
                entry.lock.release()
                self._release(key, entry)

    def active_keys(self):
        return set(self._entries)


# Shared by every service instance in this process
entity_locks = EntityLockRegistry()


async def commit_or_conflict(db: AsyncSession, resource_type: str, resource_id: str) -> None:
    """Commit the unit of work, turning a lost version race into a 409"""
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        logger.warning(
            f"Concurrent modification of {resource_type} {resource_id}",
            extra={"event_type": "concurrent_modification", "resource_type": resource_type, "resource_id": resource_id}
        )
        raise ConcurrentModificationError(resource_type, resource_id)
