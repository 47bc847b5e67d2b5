"""Storage backend protocol and the in-memory implementation."""

from __future__ import annotations

import copy
from collections.abc import Awaitable, Iterable
from typing import Any, Protocol


class StorageBackend(Protocol):
    """Structural interface consumed by :class:`~crossstore.storage.ttl.TTLStore`.

    Each method may be synchronous or return an awaitable.  ``get`` returns
    ``None`` for a missing key.  Failures are raised as any exception;
    the TTL store reports them as ``StorageFailureError``.
    """

    def get(self, key: str) -> Any | Awaitable[Any]:
        ...

    def set(self, key: str, value: Any) -> None | Awaitable[None]:
        ...

    def delete(self, key: str) -> None | Awaitable[None]:
        ...

    def keys(self) -> Iterable[str] | Awaitable[Iterable[str]]:
        ...


class MemoryBackend:
    """Dict-backed backend.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data
