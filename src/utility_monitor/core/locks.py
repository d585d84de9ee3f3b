"""Per-key serialization of state mutations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    """
    One asyncio lock per key.

    Waiters of ``asyncio.Lock`` are woken in FIFO order, so updates for the
    same key are applied in arrival order.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with self.get(key):
            yield

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def discard(self, key: str) -> None:
        """Forgets the lock of a removed key unless it is currently held."""
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]
