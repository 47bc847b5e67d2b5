"""Read-time TTL enforcement over a storage backend.

Each value is written as an :class:`~crossstore.models.entry.Entry`
record carrying an optional absolute expiry.  Expiry is lazy: a read at
or after ``expiresAt`` behaves as if the key were absent.
"""

from __future__ import annotations

import inspect
import logging
import math
import time
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from pydantic import ValidationError

from crossstore.exceptions import StorageFailureError
from crossstore.models.entry import Entry
from crossstore.storage.backend import MemoryBackend, StorageBackend

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class TTLStore:
    """Key-value store with optional per-key time-to-live.

    Parameters
    ----------
    backend
        Storage backend; defaults to a fresh :class:`MemoryBackend`.
    clock
        Returns the current time in epoch milliseconds.
    purge_expired_on_read
        Delete expired entries from the backend when a read finds them.
    """

    def __init__(
        self,
        backend: StorageBackend | None = None,
        *,
        clock: Callable[[], int] = _now_ms,
        purge_expired_on_read: bool = True,
    ) -> None:
        self._backend: StorageBackend = backend if backend is not None else MemoryBackend()
        self._clock = clock
        self._purge_on_read = purge_expired_on_read

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    async def _backend_call(self, action: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                result = await result
        except StorageFailureError:
            raise
        except Exception as exc:
            raise StorageFailureError(f"Backend {action} failed: {exc}") from exc
        return result

    async def _read_entry(self, key: str) -> Entry | None:
        record = await self._backend_call("get", self._backend.get, key)
        if record is None:
            return None
        try:
            return Entry.model_validate(record)
        except ValidationError as exc:
            raise StorageFailureError(f"Corrupt entry stored under {key!r}") from exc

    async def _purge(self, key: str) -> None:
        try:
            await self._backend_call("delete", self._backend.delete, key)
        except StorageFailureError:
            _logger.warning("Failed to purge expired key %r", key, exc_info=True)

    async def _live_entry(self, key: str, now_ms: int) -> Entry | None:
        entry = await self._read_entry(key)
        if entry is None:
            return None
        if entry.is_expired(now_ms):
            if self._purge_on_read:
                await self._purge(key)
            return None
        return entry

    async def set(self, key: str, value: Any, ttl_ms: float | None = None) -> None:
        """Store *value*; a positive finite *ttl_ms* makes it expire after that many milliseconds, rounded up."""
        expires_at: int | None = None
        if ttl_ms is not None and ttl_ms > 0 and math.isfinite(ttl_ms):
            expires_at = self._clock() + math.ceil(ttl_ms)
        entry = Entry(value=value, expires_at=expires_at)
        await self._backend_call("set", self._backend.set, key, entry.to_record())

    async def get(self, key: str) -> Any:
        """Return the live value for *key*, or ``None`` when missing or expired."""
        entry = await self._live_entry(key, self._clock())
        return None if entry is None else entry.value

    async def get_many(self, keys: Sequence[str]) -> list[Any]:
        """Return one value (or ``None``) per key, in input order."""
        now = self._clock()
        values: list[Any] = []
        for key in keys:
            entry = await self._live_entry(key, now)
            values.append(None if entry is None else entry.value)
        return values

    async def delete(self, keys: Iterable[str]) -> None:
        for key in keys:
            await self._backend_call("delete", self._backend.delete, key)

    async def get_all_keys(self) -> set[str]:
        """Keys whose entries have not expired."""
        now = self._clock()
        live: set[str] = set()
        for key in await self._all_backend_keys():
            if await self._live_entry(key, now) is not None:
                live.add(key)
        return live

    async def clear(self) -> None:
        await self.delete(await self._all_backend_keys())

    async def purge_expired(self) -> int:
        """Delete every expired entry; returns the number removed.

        Optional housekeeping: reads already treat expired entries as
        absent whether or not this ever runs.
        """
        now = self._clock()
        removed = 0
        for key in await self._all_backend_keys():
            entry = await self._read_entry(key)
            if entry is not None and entry.is_expired(now):
                await self._backend_call("delete", self._backend.delete, key)
                removed += 1
        if removed:
            _logger.debug("Purged %d expired entries", removed)
        return removed

    async def _all_backend_keys(self) -> list[str]:
        keys = await self._backend_call("keys", self._backend.keys)
        return list(keys)
