"""Per-key asyncio locking for the hub."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Iterable


class KeyLocks:
    """FIFO per-key locks plus a store-wide exclusive mode.

    Requests touching the same key run in the order they acquired their
    locks (``asyncio.Lock`` wakes waiters first-in first-out).  Multi-key
    requests lock keys in sorted order so two batches never deadlock.
    ``exclusive()`` waits for every keyed holder to finish and blocks new
    ones, for operations such as ``clear`` that touch the whole store.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}
        self._active = 0
        self._idle = asyncio.Condition()
        self._exclusive = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    @contextlib.asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        # reserve every lock up front so the FIFO position is fixed at call time
        locks = [self._checkout(key) for key in ordered]
        acquired: list[asyncio.Lock] = []
        try:
            async with self._exclusive:
                self._active += 1
            try:
                for lock in locks:
                    await lock.acquire()
                    acquired.append(lock)
                yield
            finally:
                for lock in reversed(acquired):
                    lock.release()
                async with self._idle:
                    self._active -= 1
                    self._idle.notify_all()
        finally:
            for key in ordered:
                self._checkin(key)

    @contextlib.asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._exclusive:
            async with self._idle:
                await self._idle.wait_for(lambda: self._active == 0)
            yield
